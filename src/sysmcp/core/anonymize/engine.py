"""
PII anonymization engine for records returned to tool callers.

Every string field outside a small allowlist of metadata fields is scanned
by an ordered list of detection rules. Each detected literal is replaced by
a deterministic token::

    "[" + PREFIX + "_" + upper(sha256(literal).hex)[:6] + "]"

There is no per-process salt: the same literal maps to the same token across
queries and restarts, so callers can correlate events without seeing the
underlying identity. Collisions (~1 in 16**6 per category) are accepted.

Usage::

    engine = PiiAnonymizer()
    clean = engine.anonymize_entry(raw_record)

    await engine.persist_mapping(path)
    mapping = await PiiAnonymizer.load_mapping(path)
    engine2 = PiiAnonymizer(mapping)
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
import socket
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------

# attribute name -> key in the persisted JSON document
CATEGORY_KEYS: dict[str, str] = {
    "usernames": "usernames",
    "computer_names": "computerNames",
    "ip_addresses": "ipAddresses",
    "emails": "emails",
    "paths": "paths",
}


@dataclass
class AnonymizationMapping:
    """Original literal -> token, per PII category. Append-only in practice."""

    usernames: dict[str, str] = field(default_factory=dict)
    computer_names: dict[str, str] = field(default_factory=dict)
    ip_addresses: dict[str, str] = field(default_factory=dict)
    emails: dict[str, str] = field(default_factory=dict)
    paths: dict[str, str] = field(default_factory=dict)

    def category(self, name: str) -> dict[str, str]:
        if name not in CATEGORY_KEYS:
            raise KeyError(f"Unknown anonymization category: {name}")
        return getattr(self, name)

    def copy(self) -> AnonymizationMapping:
        return AnonymizationMapping(
            **{attr: dict(getattr(self, attr)) for attr in CATEGORY_KEYS}
        )

    def merge(self, other: AnonymizationMapping) -> int:
        """Add entries from *other* that are not yet known. Returns how many were added."""
        added = 0
        for attr in CATEGORY_KEYS:
            mine = getattr(self, attr)
            for original, token in getattr(other, attr).items():
                if original not in mine:
                    mine[original] = token
                    added += 1
        return added

    def total(self) -> int:
        return sum(len(getattr(self, attr)) for attr in CATEGORY_KEYS)

    def to_dict(self) -> dict[str, Any]:
        """Flatten to the persisted document shape (without timestamp)."""
        return {key: dict(getattr(self, attr)) for attr, key in CATEGORY_KEYS.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AnonymizationMapping:
        """Build a mapping from a persisted document. Missing categories are empty."""
        if not isinstance(data, Mapping):
            raise ValueError(f"Mapping document must be an object (got {type(data).__name__})")
        kwargs: dict[str, dict[str, str]] = {}
        for attr, key in CATEGORY_KEYS.items():
            raw = data.get(key) or {}
            if not isinstance(raw, Mapping):
                raise ValueError(f"Mapping category {key!r} must be an object")
            kwargs[attr] = {str(k): str(v) for k, v in raw.items()}
        return cls(**kwargs)


def make_token(prefix: str, original: str) -> str:
    digest = hashlib.sha256(original.encode("utf-8")).hexdigest()
    return f"[{prefix}_{digest[:6].upper()}]"


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnonymizationRule:
    """
    One detector in the pipeline.

    ``group`` selects the capture group holding the PII literal; the rest of
    the match is kept verbatim. ``accept`` can veto a match (heuristic
    filters), ``normalize`` canonicalizes the literal before token lookup.
    """

    name: str
    pattern: re.Pattern[str]
    category: str
    prefix: str
    group: int = 0
    accept: Callable[[str], bool] | None = None
    normalize: Callable[[str], str] | None = None


# Words that look like computer names to the heuristic but never are.
COMPUTER_NAME_EXCLUSIONS = frozenset(
    {
        "INFORMATION", "WARNING", "ERROR", "CRITICAL", "VERBOSE", "DEBUG",
        "INFO", "WARN", "FATAL", "TRACE", "AUDIT",
        "SYSTEM", "APPLICATION", "SECURITY", "SETUP",
        "TRUE", "FALSE", "NULL", "NONE", "UNKNOWN",
        "THE", "AND", "FOR", "NOT", "ALL", "ARE", "BUT", "WAS",
        "SUCCESS", "FAILURE", "FAILED", "STARTED", "STOPPED", "RUNNING",
        "GET", "SET", "PUT", "POST", "DELETE", "PATCH",
        "TCP", "UDP", "HTTP", "HTTPS", "DNS", "DHCP", "RPC", "COM",
        "UTF-8", "UTF-16", "SHA-1", "SHA-256", "MD5", "AES-256",
        "IPV4", "IPV6", "X64", "X86", "WIN32", "WIN64",
    }
)

# Built-in profile directories that do not identify a person.
SYSTEM_PROFILE_NAMES = frozenset({"public", "default", "default user", "all users"})

_OCTET = r"(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)"
_HEX = r"[0-9A-Fa-f]{1,4}"

USERNAME_RE = re.compile(r"(?<![\\:\w.-])([A-Za-z0-9._-]+\\[A-Za-z0-9._-]+)")
COMPUTER_NAME_RE = re.compile(r"(?<![\w:.-])([A-Z][A-Z0-9-]{2,14})(?![\w:-])")
IPV4_RE = re.compile(rf"(?<![\d.])(?:{_OCTET}\.){{3}}{_OCTET}(?!\d)(?!\.\d)")
IPV6_RE = re.compile(
    r"(?<![\w:])(?:"
    rf"(?:{_HEX}:){{7}}{_HEX}"
    rf"|(?:{_HEX}:){{1,6}}(?::{_HEX}){{1,6}}"
    rf"|::(?:{_HEX}:){{0,6}}{_HEX}"
    rf"|(?:{_HEX}:){{1,7}}:"
    r")(?![\w:])"
)
EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PROFILE_PATH_RE = re.compile(r"(?i:[A-Z]:\\Users\\)([A-Za-z0-9._-]+)")


def _looks_like_computer_name(literal: str) -> bool:
    if literal in COMPUTER_NAME_EXCLUSIONS:
        return False
    return any(ch.isdigit() or ch == "-" for ch in literal)


def _is_personal_profile(literal: str) -> bool:
    return literal.lower() not in SYSTEM_PROFILE_NAMES


def detect_local_machine_name() -> str:
    """The host's short name, upper-cased; empty when it cannot be determined."""
    try:
        hostname = socket.gethostname()
    except OSError:
        return ""
    return hostname.split(".", 1)[0].strip().upper()


def default_rules(machine_name: str = "") -> list[AnonymizationRule]:
    """
    Build the detection pipeline in its fixed order.

    The local machine name (when known) runs first so that it is tokenized
    even where the generic computer-name heuristic would not fire.
    """
    rules: list[AnonymizationRule] = []
    if machine_name:
        rules.append(
            AnonymizationRule(
                name="local_machine",
                pattern=re.compile(
                    rf"(?<![\w-]){re.escape(machine_name)}(?![\w-])", re.IGNORECASE
                ),
                category="computer_names",
                prefix="ANON_COMPUTER",
                normalize=str.upper,
            )
        )
    rules += [
        AnonymizationRule("username", USERNAME_RE, "usernames", "ANON_USER", group=1),
        AnonymizationRule(
            "computer_name",
            COMPUTER_NAME_RE,
            "computer_names",
            "ANON_COMPUTER",
            group=1,
            accept=_looks_like_computer_name,
        ),
        AnonymizationRule("ipv4", IPV4_RE, "ip_addresses", "ANON_IP"),
        AnonymizationRule("ipv6", IPV6_RE, "ip_addresses", "ANON_IP"),
        AnonymizationRule("email", EMAIL_RE, "emails", "ANON_EMAIL"),
        AnonymizationRule(
            "profile_path",
            PROFILE_PATH_RE,
            "usernames",
            "ANON_USER",
            group=1,
            accept=_is_personal_profile,
        ),
    ]
    return rules


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class PiiAnonymizer:
    """
    Deterministic, mapping-backed PII anonymizer.

    The engine never raises on odd input: non-mapping records, non-string
    values and empty strings pass through unchanged. Only mapping load and
    persist touch the disk, and their errors propagate to the caller.
    """

    # Enum-like metadata, identifiers and timestamps; never scanned.
    SAFE_FIELDS = frozenset(
        {
            "logName",
            "levelDisplayName",
            "level",
            "providerName",
            "source",
            "eventId",
            "id",
            "timeCreated",
            "timestamp",
        }
    )

    def __init__(
        self,
        mapping: AnonymizationMapping | None = None,
        *,
        machine_name: str | None = None,
        rules: Iterable[AnonymizationRule] | None = None,
    ) -> None:
        self._mapping = mapping.copy() if mapping is not None else AnonymizationMapping()
        self._machine_name = (
            detect_local_machine_name() if machine_name is None else machine_name.strip().upper()
        )
        self._rules = list(rules) if rules is not None else default_rules(self._machine_name)
        for rule in self._rules:
            self._mapping.category(rule.category)  # fail fast on a bad category

    @property
    def mapping(self) -> AnonymizationMapping:
        return self._mapping

    @property
    def local_machine_name(self) -> str:
        return self._machine_name

    @property
    def rules(self) -> tuple[AnonymizationRule, ...]:
        return tuple(self._rules)

    # ------------------------------------------------------------------
    # Anonymization
    # ------------------------------------------------------------------

    def anonymize_entry(self, entry: Any) -> Any:
        """Return a copy of *entry* with PII in scannable string fields tokenized."""
        if not isinstance(entry, Mapping):
            return entry
        result = dict(entry)
        for key, value in result.items():
            if isinstance(value, str) and value and key not in self.SAFE_FIELDS:
                result[key] = self.anonymize_text(value)
        return result

    def anonymize_entries(self, entries: Iterable[Any]) -> list[Any]:
        return [self.anonymize_entry(e) for e in entries]

    def anonymize_text(self, value: Any) -> Any:
        """Run every rule over one string, in order."""
        if not isinstance(value, str) or not value:
            return value
        result = value
        for rule in self._rules:
            result = rule.pattern.sub(lambda m, r=rule: self._replace(m, r), result)
        return result

    def token_for(self, original: str, category: str, prefix: str) -> str:
        """Look up the token for *original*, creating and recording it if new."""
        table = self._mapping.category(category)
        token = table.get(original)
        if token is None:
            token = make_token(prefix, original)
            table[original] = token
        return token

    def _replace(self, match: re.Match[str], rule: AnonymizationRule) -> str:
        literal = match.group(rule.group)
        if not literal:
            return match.group(0)
        if rule.accept is not None and not rule.accept(literal):
            return match.group(0)
        key = rule.normalize(literal) if rule.normalize else literal
        token = self.token_for(key, rule.category, rule.prefix)
        whole = match.group(0)
        start = match.start(rule.group) - match.start(0)
        end = match.end(rule.group) - match.start(0)
        return whole[:start] + token + whole[end:]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def mapping_document(self) -> dict[str, Any]:
        doc = self._mapping.to_dict()
        doc["timestamp"] = datetime.now(UTC).isoformat()
        return doc

    async def persist_mapping(self, path: str | Path) -> None:
        """Write the current mapping to *path* as JSON, creating parent dirs."""
        target = Path(path)
        content = json.dumps(self.mapping_document(), indent=2)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        logger.info("Anonymization mapping persisted: %s (%d entries)", target, self._mapping.total())

    @staticmethod
    async def load_mapping(path: str | Path) -> AnonymizationMapping:
        """
        Load a persisted mapping.

        Raises:
            OSError: if the file cannot be read.
            ValueError: if it is not valid JSON or not a mapping document
                (``json.JSONDecodeError`` is a ``ValueError``).
        """
        text = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        return AnonymizationMapping.from_dict(json.loads(text))

    def merge_mapping(self, mapping: AnonymizationMapping) -> int:
        """Fold a previously persisted mapping into the live one."""
        return self._mapping.merge(mapping)
