"""
AuthChallengeDetector: interactive sign-in prompt scraper

The protocol client does not always emit a structured event for the
Microsoft device-code login. It prints a prompt instead, e.g.

    To sign in, use a web browser to open the page https://www.microsoft.com/link
    and use the code AB12CD34 to authenticate.

This module turns that diagnostic text (or the structured event, when it
does arrive) into an AuthChallenge, reporting every code exactly once.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

import config


# Device codes are short upper-case alphanumeric tokens. Anything else after
# the keyword (lower case, dashes, underscores) is not a code.
_CODE_CHARS = r"[A-Z0-9]{4,16}"
# A code only counts once something has terminated it; a code at the very end
# of a delivery may still be continued by the next write.
_CODE_TERMINATOR = r"(?=[\s.,;:!?)\]'\"`])"
_URL_TRAILING = ".,;:!?)]'\"`"


@dataclass(frozen=True)
class AuthChallenge:
    verification_url: Optional[str]
    user_code: Optional[str]
    # Identity (mention / name) of whoever asked to join. Never owned here.
    operator: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.verification_url and self.user_code)


class AuthChallengeDetector:
    """
    Stateful scanner for one pending challenge.

    observe() may be called once per raw delivery: a prompt split across
    several writes is still found because a bounded tail of earlier
    deliveries is kept. Once a code has been reported, the same code is
    ignored until clear() is called.
    """

    def __init__(
        self,
        link_marker: Optional[str] = None,
        code_keyword: Optional[str] = None,
        default_url: Optional[str] = None,
        buffer_chars: Optional[int] = None,
    ) -> None:
        self.link_marker = link_marker or getattr(config, "AUTH_LINK_MARKER", "microsoft.com/link")
        self.code_keyword = code_keyword or getattr(config, "AUTH_CODE_KEYWORD", "code")
        self.default_url = default_url or getattr(config, "AUTH_DEFAULT_URL", "https://www.microsoft.com/link")
        self.buffer_chars = int(buffer_chars or getattr(config, "AUTH_BUFFER_CHARS", 512))

        self._code_re = re.compile(
            rf"\b{re.escape(self.code_keyword)}\s+({_CODE_CHARS}){_CODE_TERMINATOR}"
        )
        self._url_re = re.compile(rf"https?://[^\s'\"<>]*{re.escape(self.link_marker)}[^\s'\"<>]*")
        self._code_only_re = re.compile(rf"^{_CODE_CHARS}$")

        self._buffer = ""
        self._reported_code: Optional[str] = None
        self.current: Optional[AuthChallenge] = None

    @property
    def active(self) -> bool:
        return self.current is not None

    def observe(self, fragment: str, operator: Optional[str] = None) -> Optional[AuthChallenge]:
        """
        Feed one side-channel delivery.

        Returns a new AuthChallenge when the accumulated text holds both the
        link marker and a well-formed code that has not been reported yet.
        Returns None otherwise (including partial or malformed prompts).
        """
        if not fragment:
            return None

        text = self._buffer + str(fragment)
        self._buffer = text[-self.buffer_chars:]

        if self.link_marker not in text:
            return None

        m = self._code_re.search(text)
        if not m:
            return None

        code = m.group(1)
        url_match = self._url_re.search(text)
        url = url_match.group(0).rstrip(_URL_TRAILING) if url_match else self.default_url

        # Matched text must not match again on the next delivery.
        self._buffer = ""
        return self._report(url, code, operator)

    def report(self, url: Optional[str], code: Optional[str], operator: Optional[str] = None) -> Optional[AuthChallenge]:
        """Structured variant of observe() for the client's auth_pending event."""
        code = (code or "").strip()
        if not code or not self._code_only_re.match(code):
            return None
        return self._report((url or "").strip() or self.default_url, code, operator)

    def _report(self, url: str, code: str, operator: Optional[str]) -> Optional[AuthChallenge]:
        if code == self._reported_code:
            return None
        self._reported_code = code
        self.current = AuthChallenge(verification_url=url, user_code=code, operator=operator)
        return self.current

    def clear(self) -> None:
        self._buffer = ""
        self._reported_code = None
        self.current = None
