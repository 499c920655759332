import pytest

from hoptrace import SessionConfig, get_platform, parse_ping_rtt, parse_traceroute
from hoptrace._platform import DarwinPlatform, Platform, UnixPlatform, WindowsPlatform

LINUX_TRACEROUTE = """\
traceroute to 8.8.8.8 (8.8.8.8), 30 hops max, 60 byte packets
 1  192.168.1.1  1.234 ms  1.123 ms  1.345 ms
 2  * * *
 3  10.0.0.1  8.201 ms 10.0.0.2  8.950 ms  9.004 ms
 4  router.example.net (203.0.113.9)  12.1 ms  12.3 ms  12.0 ms
 5  8.8.8.8  14.002 ms  13.871 ms  14.113 ms
"""

WINDOWS_TRACERT = """\
Tracing route to 8.8.8.8 over a maximum of 30 hops

  1    <1 ms    <1 ms    <1 ms  192.168.1.1
  2     *        *        *     Request timed out.
  3    12 ms    11 ms    13 ms  [10.20.30.40]
  4     *        *        *     Zeitüberschreitung der Anforderung.
  5    15 ms    14 ms    14 ms  8.8.8.8

Trace complete.
"""


def test_linux_traceroute_hop_lines():
    entries = parse_traceroute(LINUX_TRACEROUTE, get_platform("unix"))
    assert [(e.hop_number, e.ip) for e in entries] == [
        (1, "192.168.1.1"),
        (3, "10.0.0.1"),
        (4, "203.0.113.9"),
        (5, "8.8.8.8"),
    ]


def test_header_line_is_not_a_hop():
    entries = get_platform("unix").parse_traceroute(
        "traceroute to 1.1.1.1 (1.1.1.1), 30 hops max\n"
    )
    assert entries == []


def test_first_line_for_a_hop_wins_and_output_is_sorted():
    text = " 2  10.0.0.2  1 ms\n 1  10.0.0.1  1 ms\n 2  10.9.9.9  1 ms\n"
    entries = get_platform("unix").parse_traceroute(text)
    assert [(e.hop_number, e.ip) for e in entries] == [(1, "10.0.0.1"), (2, "10.0.0.2")]


def test_windows_tracert_skips_timeouts_in_any_language():
    entries = parse_traceroute(WINDOWS_TRACERT, get_platform("windows"))
    assert [(e.hop_number, e.ip) for e in entries] == [
        (1, "192.168.1.1"),
        (3, "10.20.30.40"),
        (5, "8.8.8.8"),
    ]


def test_ipv6_hop():
    entries = get_platform("unix").parse_traceroute(" 1  2001:db8::1  0.5 ms\n")
    assert entries[0].ip == "2001:db8::1"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("64 bytes from 8.8.8.8: icmp_seq=1 ttl=117 time=14.2 ms", 14.2),
        ("64 bytes from 8.8.8.8: icmp_seq=1 ttl=117 time=3 ms", 3.0),
        ("64 bytes from 127.0.0.1: icmp_seq=1 ttl=64 time<1 ms", 1.0),
        ("1 packets transmitted, 0 received, 100% packet loss", None),
        ("", None),
    ],
)
def test_unix_ping_rtt(text, expected):
    assert parse_ping_rtt(text, get_platform("unix")) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Reply from 8.8.8.8: bytes=32 time=14ms TTL=117", 14.0),
        ("Reply from 192.168.1.1: bytes=32 time<1ms TTL=64", 1.0),
        ("Antwort von 8.8.8.8: Bytes=32 Zeit=23ms TTL=117", 23.0),
        ("Réponse de 8.8.8.8 : octets=32 temps=7,5 ms TTL=117", 7.5),
        ("Request timed out.", None),
    ],
)
def test_windows_ping_rtt(text, expected):
    assert parse_ping_rtt(text, get_platform("windows")) == expected


def test_nslookup_unix_and_windows_formats():
    platform = get_platform("unix")
    unix_out = (
        "Server:\t\t127.0.0.53\n"
        "1.1.1.1.in-addr.arpa\tname = one.one.one.one.\n"
    )
    windows_out = (
        "Server:  dns.google\nAddress:  8.8.8.8\n\n"
        "Name:    dns.google\nAddress:  8.8.8.8\n"
    )
    assert platform.parse_nslookup(unix_out, "1.1.1.1") == "one.one.one.one"
    assert platform.parse_nslookup(windows_out, "8.8.8.8") == "dns.google"
    assert platform.parse_nslookup("** server can't find 9.9.9.9: NXDOMAIN", "9.9.9.9") is None


def test_unix_commands():
    platform = UnixPlatform()
    config = SessionConfig("8.8.8.8", timeout=1500, probes_per_hop=2)
    assert platform.traceroute_command("8.8.8.8", 4, config) == [
        "-n", "-w", "2", "-q", "2", "-f", "4", "-m", "4", "8.8.8.8",
    ]
    assert platform.traceroute_timeout_ms(4, config) == 5000
    assert platform.ping_command("10.0.0.1", 1000) == ["-n", "-c", "1", "-W", "1", "10.0.0.1"]


def test_darwin_ping_takes_milliseconds():
    assert DarwinPlatform().ping_command("10.0.0.1", 800) == [
        "-n", "-c", "1", "-W", "800", "10.0.0.1",
    ]


def test_windows_commands():
    platform = WindowsPlatform()
    config = SessionConfig("8.8.8.8", timeout=1000)
    assert platform.traceroute_binary == "tracert"
    assert platform.traceroute_command("8.8.8.8", 3, config) == [
        "-d", "-h", "3", "-w", "1000", "8.8.8.8",
    ]
    assert platform.ping_command("8.8.8.8", 1000) == ["-n", "1", "-w", "1000", "8.8.8.8"]


def test_get_platform():
    assert isinstance(get_platform("linux"), UnixPlatform)
    assert isinstance(get_platform("Windows"), WindowsPlatform)
    assert isinstance(get_platform(), Platform)
    with pytest.raises(ValueError):
        get_platform("plan9")
