"""Versioned save/load of a session's config and raw ping histories."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Protocol, Union

from pydantic import ValidationError

from ._config import SessionConfig
from ._exceptions import MalformedSessionError, UnsupportedVersionError
from ._hop import Hop, PingEvent
from ._log import logger
from ._schema import (
    ConfigModel,
    HopV1,
    HopV2,
    SnapshotEnvelope,
    SnapshotV1,
    SnapshotV2,
)

VERSION_1 = "1.0.0"
VERSION_2 = "2.0.0"
CURRENT_VERSION = VERSION_2
SUPPORTED_VERSIONS = (VERSION_1, VERSION_2)


class FileSystem(Protocol):
    def read_bytes(self, path: str) -> bytes: ...

    def write_bytes(self, path: str, data: bytes) -> None: ...


class LocalFileSystem:
    def read_bytes(self, path: str) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: str, data: bytes) -> None:
        Path(path).write_bytes(data)


@dataclass
class LoadedSession:
    config: SessionConfig
    hops: list[Hop]
    version: str
    exported_at: str

    def __str__(self) -> str:
        lines = [
            f"Session to {self.config.target} exported {self.exported_at} "
            f"(format {self.version}), {len(self.hops)} hops"
        ]
        for hop in self.hops:
            stats = hop.statistics()
            avg = f"{stats.rtt_avg:.2f}" if stats.rtt_avg is not None else "?"
            lines.append(
                f"{hop.hop_number:<4} {hop.ip:<20} {hop.hostname or '?':<40}"
                f" {stats.sent:>5} {stats.loss_percent:>6.1f} {avg:>8}"
            )
        return "\n".join(lines) + "\n"

    def __rich__(self) -> str:  # pragma: no cover - rich display helper
        return self.__str__()


class SessionCodec:
    """Encode sessions as compact JSON and decode both known format versions.

    Version dispatch happens once, in :meth:`deserialize`; the per-version
    readers below only ever see a structurally validated document.
    """

    def __init__(self, filesystem: Optional[FileSystem] = None) -> None:
        self.filesystem = filesystem or LocalFileSystem()

    # ---------------------------------------------------------------- encode

    def serialize(
        self,
        config: SessionConfig,
        hops: Iterable[Hop],
        exported_at: Optional[datetime] = None,
    ) -> bytes:
        exported_at = exported_at or datetime.now(timezone.utc)
        document = {
            "version": CURRENT_VERSION,
            "config": config.to_dict(),
            "hops": [
                {
                    "hopNumber": hop.hop_number,
                    "ip": hop.ip,
                    "hostname": hop.hostname,
                    "pingHistory": hop.compact_history(),
                }
                for hop in sorted(hops, key=lambda h: h.hop_number)
            ],
            "exportDate": exported_at.isoformat().replace("+00:00", "Z"),
        }
        return json.dumps(document, separators=(",", ":")).encode("utf-8")

    # ---------------------------------------------------------------- decode

    @staticmethod
    def _envelope(blob: Union[bytes, str]) -> SnapshotEnvelope:
        try:
            return SnapshotEnvelope.model_validate_json(blob)
        except (ValidationError, UnicodeDecodeError) as exc:
            raise MalformedSessionError(f"Not a session file: {exc}") from exc

    def validate(self, blob: Union[bytes, str]) -> bool:
        """True when ``blob`` looks like a session file of a version we read."""
        try:
            envelope = self._envelope(blob)
        except MalformedSessionError as exc:
            logger.debug("File validation error: %s", exc)
            return False
        return envelope.version in SUPPORTED_VERSIONS

    def deserialize(self, blob: Union[bytes, str]) -> LoadedSession:
        version = self._envelope(blob).version
        if version not in SUPPORTED_VERSIONS:
            raise UnsupportedVersionError(version)

        model = SnapshotV1 if version == VERSION_1 else SnapshotV2
        try:
            document = model.model_validate_json(blob)
        except ValidationError as exc:
            raise MalformedSessionError(str(exc)) from exc

        try:
            config = self._read_config(document.config)
            if version == VERSION_1:
                hops = self._read_v1(document)
            else:
                hops = self._read_v2(document)
        except ValueError as exc:
            raise MalformedSessionError(str(exc)) from exc
        logger.info(
            "Loaded session to %s (format %s, %d hops)", config.target, version, len(hops)
        )
        return LoadedSession(
            config=config, hops=hops, version=version, exported_at=document.export_date
        )

    @staticmethod
    def _read_config(model: ConfigModel) -> SessionConfig:
        return SessionConfig(
            target=model.target,
            max_hops=model.max_hops,
            timeout=model.timeout,
            probes_per_hop=model.probes_per_hop,
        )

    @staticmethod
    def _index(entries: Iterable[Union[HopV1, HopV2]]) -> dict[int, Hop]:
        hops: dict[int, Hop] = {}
        for entry in entries:
            if entry.hop_number in hops:
                raise MalformedSessionError(f"duplicate hop {entry.hop_number}")
            hops[entry.hop_number] = Hop(entry.hop_number, entry.ip, entry.hostname or None)
        return hops

    @staticmethod
    def _replay(hop: Hop, events: list[PingEvent]) -> None:
        hop.replay(sorted(events, key=lambda e: e.sent_at))

    def _read_v2(self, document: SnapshotV2) -> list[Hop]:
        hops = self._index(document.hops)
        for entry in document.hops:
            events = [PingEvent(sent_at=p.s, responded_at=p.e) for p in entry.ping_history]
            self._replay(hops[entry.hop_number], events)
        return [hops[n] for n in sorted(hops)]

    def _read_v1(self, document: SnapshotV1) -> list[Hop]:
        hops = self._index(document.hops)

        by_ip: dict[str, Hop] = {}
        for number in sorted(hops, reverse=True):
            by_ip[hops[number].ip] = hops[number]

        attributed: dict[int, list[PingEvent]] = {n: [] for n in hops}
        unmatched = 0
        for ping in document.ping_history:
            target_ip = ping.target_ip
            hop = by_ip.get(target_ip) if isinstance(target_ip, str) else None
            if hop is None:
                unmatched += 1
                continue
            sent = ping.sent_timestamp
            if ping.response_time is not None:
                event = PingEvent.success(sent, ping.response_time)
            elif ping.response_timestamp is not None and ping.is_successful:
                event = PingEvent(sent_at=sent, responded_at=ping.response_timestamp)
            else:
                event = PingEvent.failure(sent)
            attributed[hop.hop_number].append(event)

        if unmatched:
            logger.warning("%d pings did not match any hop and were skipped", unmatched)
        for number, events in attributed.items():
            self._replay(hops[number], events)
        return [hops[n] for n in sorted(hops)]

    # ----------------------------------------------------------------- files

    def save(self, path: str, config: SessionConfig, hops: Iterable[Hop]) -> None:
        self.filesystem.write_bytes(path, self.serialize(config, hops))
        logger.info("Saved session to %s", path)

    def load(self, path: str) -> LoadedSession:
        return self.deserialize(self.filesystem.read_bytes(path))
