import asyncio
import socket

import pytest

from conftest import FakeRunner, Reply
from hoptrace import EngineSettings, HostnameResolver, ResolutionError

NSLOOKUP_OK = "Server:\t\t8.8.8.8\n\n1.0.0.10.in-addr.arpa\tname = core1.example.net.\n"


@pytest.fixture
def reverse(monkeypatch):
    answers = {}

    def fake_gethostbyaddr(ip):
        answer = answers.get(ip)
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            raise socket.herror(1, "Unknown host")
        return answer

    monkeypatch.setattr(HostnameResolver, "_gethostbyaddr", staticmethod(fake_gethostbyaddr))
    return answers


def make_resolver(unix, handler=None):
    runner = FakeRunner(handler or (lambda c, a: Reply(exit_code=1)))
    return HostnameResolver(runner, unix, EngineSettings(platform="unix")), runner


def test_primary_answer(unix, reverse):
    reverse["10.0.0.1"] = "core1.example.net"
    resolver, runner = make_resolver(unix)

    assert asyncio.run(resolver.resolve("10.0.0.1")) == "core1.example.net"
    assert runner.calls == []


def test_fallback_when_primary_fails(unix, reverse):
    resolver, runner = make_resolver(unix, lambda c, a: Reply(stdout=NSLOOKUP_OK))

    assert asyncio.run(resolver.resolve("10.0.0.1")) == "core1.example.net"
    assert runner.calls == [("nslookup", ["10.0.0.1", "8.8.8.8"])]


def test_primary_echoing_the_address_is_not_a_name(unix, reverse):
    reverse["10.0.0.1"] = "10.0.0.1"
    resolver, runner = make_resolver(unix, lambda c, a: Reply(stdout=NSLOOKUP_OK))

    assert asyncio.run(resolver.resolve("10.0.0.1")) == "core1.example.net"
    assert len(runner.calls) == 1


def test_no_name_anywhere(unix, reverse):
    resolver, runner = make_resolver(unix, lambda c, a: Reply(timed_out=True))

    async def scenario():
        first = await resolver.resolve("10.0.0.9")
        second = await resolver.resolve("10.0.0.9")
        return first, second

    assert asyncio.run(scenario()) == (None, None)
    # answers, including misses, are cached
    assert len(runner.calls) == 1


def test_literal_target_is_normalized(unix):
    resolver, _ = make_resolver(unix)
    assert asyncio.run(resolver.resolve_target(" 8.8.8.8 ")) == "8.8.8.8"
    assert asyncio.run(resolver.resolve_target("2001:DB8::1")) == "2001:db8::1"


def test_hostname_target(unix, monkeypatch):
    monkeypatch.setattr(HostnameResolver, "_getaddrinfo", staticmethod(lambda host: "93.184.216.34"))
    resolver, _ = make_resolver(unix)
    assert asyncio.run(resolver.resolve_target("example.com")) == "93.184.216.34"


def test_unresolvable_target(unix, monkeypatch):
    def fail(host):
        raise socket.gaierror(-2, "Name or service not known")

    monkeypatch.setattr(HostnameResolver, "_getaddrinfo", staticmethod(fail))
    resolver, _ = make_resolver(unix)

    with pytest.raises(ResolutionError) as info:
        asyncio.run(resolver.resolve_target("nowhere.invalid"))
    assert info.value.target == "nowhere.invalid"
    assert str(info.value) == "Could not resolve hostname: nowhere.invalid"


@pytest.mark.parametrize("target", ["a..example.com", "x" * 64 + ".example.com"])
def test_target_that_cannot_be_encoded(unix, target):
    resolver, _ = make_resolver(unix)

    with pytest.raises(ResolutionError) as info:
        asyncio.run(resolver.resolve_target(target))
    assert info.value.target == target


def test_encoding_error_from_lookup(unix, monkeypatch):
    def fail(host):
        raise UnicodeError("label empty or too long")

    monkeypatch.setattr(HostnameResolver, "_getaddrinfo", staticmethod(fail))
    resolver, _ = make_resolver(unix)

    with pytest.raises(ResolutionError):
        asyncio.run(resolver.resolve_target("bad..name"))
