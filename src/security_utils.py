"""Prompt injection detection for the request gate.

Detection is heuristic only: a match is treated as hostile, but no
false-negative guarantee is claimed. The gate depends on the InjectionDetector
protocol so a semantic classifier can replace the regex strategy later.
"""
from __future__ import annotations

import base64
import binascii
import re
import unicodedata
from typing import List, Pattern, Protocol, Sequence
from urllib.parse import unquote

INJECTION_PATTERNS: List[str] = [
    r"ignore\s+(all\s+)?(previous|prior|above)",
    r"disregard\s+(all\s+)?(previous|prior|above|system|instructions)",
    r"you\s+are\s+now",
    r"new\s+instructions",
    r"forget\s+(everything|all)",
    r"override\s+(all\s+)?(the\s+)?(rules|instructions|system)",
    r"bypass\s+(all\s+)?(the\s+)?(security|policy|policies|rules)",
    r"admin\s+mode",
    r"\bsudo\b",
    r"grant\s+(me\s+)?superadmin",
    r"\bsuperadmin\b",
    r"pretend\s+(you|to)\s+(are|be)",
    r"act\s+as\s+(an?\s+)?(admin|administrator|root|system)",
    r"(^|\n)\s*(system|assistant)\s*:",
]


class InjectionDetector(Protocol):
    def detect(self, text: str) -> bool:
        ...


def normalize_text(text: str) -> str:
    """
    Normalize text to detect obfuscated attacks.

    Handles:
    - Unicode homoglyphs (e.g., accented or full-width characters)
    - Leetspeak substitutions
    - Multiple whitespace normalization
    """
    normalized = unicodedata.normalize("NFKD", text)
    lowered = normalized.encode("ASCII", "ignore").decode("ASCII").lower()

    leetspeak_map = {
        "0": "o",
        "1": "i",
        "3": "e",
        "4": "a",
        "5": "s",
        "7": "t",
        "@": "a",
        "$": "s",
    }
    for num, letter in leetspeak_map.items():
        lowered = lowered.replace(num, letter)

    return re.sub(r"\s+", " ", lowered)


class RegexInjectionDetector:
    """Matches raw text against a fixed list of case-insensitive signatures."""

    def __init__(
        self,
        patterns: Sequence[str] = INJECTION_PATTERNS,
        check_normalized: bool = True,
        check_encoded: bool = True,
    ) -> None:
        self._patterns: List[Pattern[str]] = [re.compile(p, re.IGNORECASE) for p in patterns]
        self.check_normalized = check_normalized
        self.check_encoded = check_encoded

    def _matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self._patterns)

    def _decoded_candidates(self, text: str) -> List[str]:
        decoded: List[str] = []
        for match in re.findall(r"[A-Za-z0-9+/]{20,}={0,2}", text):
            try:
                decoded.append(base64.b64decode(match, validate=True).decode("utf-8", errors="ignore"))
            except (binascii.Error, ValueError):
                continue
        for match in re.findall(r"(?:%[0-9a-fA-F]{2})+", text):
            decoded.append(unquote(match))
        return decoded

    def detect(self, text: str) -> bool:
        if not text:
            return False
        if self._matches(text):
            return True
        if self.check_normalized and self._matches(normalize_text(text)):
            return True
        if self.check_encoded:
            return any(self._matches(candidate) for candidate in self._decoded_candidates(text))
        return False


class DisabledInjectionDetector:
    """Used when injection detection is switched off in configuration."""

    def detect(self, text: str) -> bool:
        return False


_DEFAULT_DETECTOR = RegexInjectionDetector()


def detect_prompt_injection(text: str) -> bool:
    return _DEFAULT_DETECTOR.detect(text)
