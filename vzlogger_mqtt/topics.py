from __future__ import annotations

from dataclasses import dataclass, field
import logging
import threading

from vzlogger_mqtt.channel import Channel
from vzlogger_mqtt.logging_utils import TRACE_LEVEL

RAW_SUFFIX = "/raw"
AGG_SUFFIX = "/agg"
ANNOUNCE_SUFFIX = "/uuid"


@dataclass
class ChannelTopicEntry:
    raw_topic: str
    agg_topic: str
    announce_topic: str
    announce_value: str
    send_agg: bool
    send_raw: bool = True
    announced: bool = False
    # held across the announce check, send and flag flip
    announce_lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def topic_for(self, aggregate: bool) -> str:
        return self.agg_topic if aggregate else self.raw_topic

    def sends(self, aggregate: bool) -> bool:
        return (self.send_agg and aggregate) or (self.send_raw and not aggregate)


def generate_names(
    prefix: str,
    channel_name: str,
    has_aggregation: bool,
    channel_uid: str,
) -> ChannelTopicEntry:
    """Derive the topic set for one channel.

    Channel names are used verbatim: a name containing ``/``, ``+`` or ``#``
    yields extra topic levels or topics the broker will reject.
    """
    base = prefix + channel_name
    return ChannelTopicEntry(
        raw_topic=base + RAW_SUFFIX,
        agg_topic=base + AGG_SUFFIX,
        announce_topic=base + ANNOUNCE_SUFFIX,
        announce_value=channel_uid,
        send_agg=has_aggregation,
    )


class ChannelTopicCache:
    """Channel name to topic entry map, filled on first publish and never evicted."""

    def __init__(self, prefix: str, raw_and_agg: bool) -> None:
        self.prefix = prefix
        self.raw_and_agg = raw_and_agg
        self.logger = logging.getLogger(self.__class__.__name__)
        self._entries: dict[str, ChannelTopicEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def get(self, name: str) -> ChannelTopicEntry | None:
        return self._entries.get(name)

    def resolve(self, name: str, channel: Channel) -> ChannelTopicEntry:
        entry = self._entries.get(name)
        if entry is not None:
            return entry
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                entry = generate_names(
                    self.prefix, name, channel.has_aggregation, channel.uuid
                )
                if entry.send_agg and not self.raw_and_agg:
                    entry.send_raw = False
                self._entries[name] = entry
                self.logger.log(
                    TRACE_LEVEL,
                    "New channel %s: raw=%s agg=%s",
                    name,
                    entry.raw_topic if entry.send_raw else "-",
                    entry.agg_topic if entry.send_agg else "-",
                )
        return entry
