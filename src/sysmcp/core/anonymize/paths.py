"""
Path anonymizer for file-search results.

Replaces the profile segment of user-scoped paths and author metadata with
the same tokens the shared :class:`PiiAnonymizer` produces, so a user seen
in an event log and in a file path correlates to one token.

    C:\\Users\\john.doe\\Documents\\a.docx -> C:\\Users\\[ANON_USER_1A2B3C]\\Documents\\a.docx
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from sysmcp.core.anonymize.engine import SYSTEM_PROFILE_NAMES, PiiAnonymizer

_WINDOWS_PROFILE_RE = re.compile(r"^([A-Za-z]):\\Users\\([^\\]+)(\\.*)?$", re.IGNORECASE)
_UNIX_PROFILE_RE = re.compile(r"^/home/([^/]+)(/.*)?$")


class PathAnonymizer:
    def __init__(self, anonymizer: PiiAnonymizer) -> None:
        self._anonymizer = anonymizer

    def _user_token(self, username: str) -> str:
        return self._anonymizer.token_for(username, "usernames", "ANON_USER")

    def anonymize_path(self, file_path: Any) -> Any:
        if not isinstance(file_path, str) or not file_path:
            return file_path

        m = _WINDOWS_PROFILE_RE.match(file_path)
        if m:
            drive, username, rest = m.group(1), m.group(2), m.group(3) or ""
            if username.lower() in SYSTEM_PROFILE_NAMES:
                return file_path
            return f"{drive}:\\Users\\{self._user_token(username)}{rest}"

        m = _UNIX_PROFILE_RE.match(file_path)
        if m:
            username, rest = m.group(1), m.group(2) or ""
            return f"/home/{self._user_token(username)}{rest}"

        return file_path

    def anonymize_author(self, author: Any) -> Any:
        if not isinstance(author, str) or not author:
            return author
        return self._user_token(author)

    def anonymize_entry(self, entry: Any) -> Any:
        """Copy of a file-search entry with ``path`` and ``author`` anonymized."""
        if not isinstance(entry, Mapping):
            return entry
        result = dict(entry)
        if "path" in result:
            result["path"] = self.anonymize_path(result["path"])
        if result.get("author"):
            result["author"] = self.anonymize_author(result["author"])
        return result

    def anonymize_entries(self, entries: Iterable[Any]) -> list[Any]:
        return [self.anonymize_entry(e) for e in entries]
