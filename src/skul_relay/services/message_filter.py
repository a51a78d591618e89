"""Content classifier for conversation messages.

Detects content that breaks messaging policy and tags each finding with a
type and a severity:

- phone numbers and email addresses (contact sharing)
- payment bypass attempts
- social media handles and off-platform contact attempts
- profanity, harassment and shouting
- spam patterns

``classify`` is a pure function: identical input always produces an
identical result. A message is blocked only when a finding is critical;
everything else is admitted and recorded for review.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final


class Severity(str, Enum):
    """Severity of a single policy finding."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Return the ordering weight (critical > high > medium > low)."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: Final[dict[Severity, int]] = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}

FLAG_PHONE_NUMBER: Final = "phone_number"
FLAG_EMAIL: Final = "email"
FLAG_PAYMENT_REQUEST: Final = "payment_request"
FLAG_SOCIAL_MEDIA: Final = "social_media"
FLAG_EXTERNAL_CONTACT: Final = "external_contact"
FLAG_INAPPROPRIATE_LANGUAGE: Final = "inappropriate_language"
FLAG_HARASSMENT: Final = "harassment"
FLAG_SPAM: Final = "spam"

_STAY_ON_PLATFORM = "Please keep all communication on PrepSkul."


@dataclass(frozen=True)
class Flag:
    """A single policy finding for one message."""

    type: str
    severity: Severity
    detected: str
    reason: str

    def to_summary(self) -> dict[str, str]:
        """Return the redacted view returned to API callers."""
        return {"type": self.type, "severity": self.severity.value, "reason": self.reason}

    def to_record(self) -> dict[str, str]:
        """Return the full view stored for moderators."""
        return {
            "type": self.type,
            "severity": self.severity.value,
            "detected": self.detected,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class FilterResult:
    """Outcome of classifying one message."""

    allowed: bool
    flags: tuple[Flag, ...] = ()
    warnings: tuple[str, ...] = field(default=())

    @property
    def will_block(self) -> bool:
        return not self.allowed

    @property
    def flag_types(self) -> list[str]:
        return [flag.type for flag in self.flags]

    @property
    def has_critical(self) -> bool:
        return any(flag.severity is Severity.CRITICAL for flag in self.flags)

    def most_severe(self) -> Flag | None:
        """Return the highest-severity flag (first one wins on ties)."""
        return most_severe_flag(self.flags)

    def summaries(self) -> list[dict[str, str]]:
        return [flag.to_summary() for flag in self.flags]

    def records(self) -> list[dict[str, Any]]:
        return [flag.to_record() for flag in self.flags]

    @classmethod
    def from_records(cls, records: list[dict[str, Any]], allowed: bool = False) -> FilterResult:
        """Rebuild a result from the flags stored on a flagged message."""
        flags = tuple(
            Flag(
                type=record["type"],
                severity=Severity(record["severity"]),
                detected=record.get("detected", ""),
                reason=record.get("reason", ""),
            )
            for record in records
        )
        return cls(allowed=allowed, flags=flags)


def most_severe_flag(flags: tuple[Flag, ...] | list[Flag]) -> Flag | None:
    """Return the most severe flag in ``flags`` or None when empty."""
    if not flags:
        return None
    return max(flags, key=lambda flag: flag.severity.rank)


def classify(
    text: str,
    sender_id: str | None = None,
    conversation_id: str | None = None,
) -> FilterResult:
    """Run every detector over ``text`` and decide whether it may be sent.

    Args:
        text: Raw message content as submitted.
        sender_id: Sender identifier; does not influence the result.
        conversation_id: Conversation identifier; does not influence the result.

    Returns:
        FilterResult whose ``allowed`` is False iff a critical flag was found.
    """
    flags: list[Flag] = []
    flags.extend(detect_phone_numbers(text))
    flags.extend(detect_email_addresses(text))
    flags.extend(detect_payment_requests(text))
    flags.extend(detect_social_media(text))
    flags.extend(detect_external_contact(text))
    flags.extend(detect_inappropriate_language(text))
    flags.extend(detect_spam(text))

    allowed = not any(flag.severity is Severity.CRITICAL for flag in flags)
    warnings = tuple(flag.reason for flag in flags) if allowed else ()
    return FilterResult(allowed=allowed, flags=tuple(flags), warnings=warnings)


# ---------------------------------------------------------------------------
# Phone numbers
# ---------------------------------------------------------------------------

_PHONE_CANDIDATES: Final = (
    # Cameroon numbers with country prefix, then bare national numbers.
    re.compile(r"(?:\+237|00237|237)[\s-]?[6-9](?:[\s-]?\d){8}"),
    re.compile(r"\b[6-9](?:[\s-]?\d){8}\b"),
    # International and North American formats.
    re.compile(r"\+\d{1,4}[\s-]?\d{1,4}[\s-]?\d{4,14}"),
    re.compile(r"\(?\d{3}\)?[\s-]?\d{3}[\s-]?\d{4}"),
)
_PHONE_MIN_DIGITS: Final = 8

_PHONE_WHITELIST: Final = tuple(
    re.compile(pattern)
    for pattern in (
        r"\b(?:the\s+)?(?:answer|result|solution|value|calculation|compute)\s+(?:is|equals?|:)\s*\d+",
        r"\b(?:problem|question|exercise|equation|formula|solve)\w*\s+\d+",
        r"\b(?:score|grade|mark|percentage|percent)\s+(?:of|is|:)?\s*\d+",
        r"\b(?:step|method|process)\s+\d+",
        r"\b(?:divided\s+by|multiplied\s+by|plus|minus|times)\s+\d+",
        r"\d+\s+[+\-*/=]\s+\d+|\d+\s*[*/=]\s*\d+",
        r"\b(?:example|sample|practice|homework|assignment)\w*\s+\d+",
    )
)

_CONTACT_PHRASES: Final = tuple(
    re.compile(pattern)
    for pattern in (
        r"\b(?:call|contact|reach|text|message|phone|mobile|whatsapp|telegram)\s+"
        r"(?:me\s+)?(?:at|on|via|using)?\s*[+(]?\d",
        r"\b(?:my|your|his|her|their)\s+(?:phone|mobile|cell|contact|whatsapp)"
        r"(?:\s+number)?\s*(?:is|:)?\s*[+(]?\d",
        r"\b(?:my|your|his|her|their)\s+number\s*(?:is|:)?\s*[+(]?\d",
        r"\b(?:share|give|send|provide)\s+(?:me\s+)?(?:your|my)?\s*(?:phone|number|contact)\w*\s*[+(]?\d",
        r"\b(?:here|this|that)(?:\s+is|'s)?\s*(?:my|your|the)?\s*(?:phone|number|contact)\w*:?\s*[+(]?\d",
    )
)

_CALCULATION_PHRASES: Final = tuple(
    re.compile(pattern)
    for pattern in (
        r"\b(?:calculate|result|answer|solution|equals?|compute)\w*\s*\d+",
        r"\b(?:equation|formula|problem|solve|divided|multiplied|plus|minus)\w*\s*\d+",
        r"\b(?:score|grade|mark|percentage)\s+(?:of|is|:)?\s*\d+",
    )
)

_NUMBER_SEQUENCE: Final = re.compile(r"\d+\s*[,\s]+\d+\s*[,\s]+\d+")
_COUNTRY_CODE: Final = re.compile(r"^(?:\+\d|00237)")

PHONE_BLOCK_SCORE: Final = 60
PHONE_REVIEW_SCORE: Final = 40


def _phone_candidates(content: str) -> list[tuple[int, str]]:
    seen: set[tuple[int, str]] = set()
    candidates: list[tuple[int, str]] = []
    for pattern in _PHONE_CANDIDATES:
        for match in pattern.finditer(content):
            digits = re.sub(r"\D", "", match.group(0))
            key = (match.start(), match.group(0))
            if len(digits) >= _PHONE_MIN_DIGITS and key not in seen:
                seen.add(key)
                candidates.append(key)
    return candidates


def _is_educational_number(content: str, index: int) -> bool:
    window = content[max(0, index - 100) : index + 100].lower()
    return any(pattern.search(window) for pattern in _PHONE_WHITELIST)


def score_phone_number(content: str, match: str, index: int) -> int:
    """Score how likely ``match`` at ``index`` is a shared phone number (0-100)."""
    end = index + len(match)
    before = content[max(0, index - 50) : index].lower()
    after = content[end : end + 50].lower()
    context = before + match.lower() + after
    length = len(content)

    score = 0
    if _COUNTRY_CODE.match(match):
        score += 30
    if any(pattern.search(context) for pattern in _CONTACT_PHRASES):
        score += 40
    if any(pattern.search(context) for pattern in _CALCULATION_PHRASES):
        score -= 50

    if length < 50:
        score += 20
    elif length > 300:
        score -= 20

    if index <= length * 0.2 or end >= length * 0.8:
        score += 10
    else:
        score -= 10

    for line in content.splitlines():
        if match in line:
            if line.strip() == match.strip() and len(line.strip()) < 30:
                score += 15
            break

    if _NUMBER_SEQUENCE.search(f"{before} {after}"):
        score -= 30

    return max(0, min(100, score))


def detect_phone_numbers(content: str) -> list[Flag]:
    """Flag the most phone-like number in ``content``, if any."""
    best: tuple[int, str] | None = None
    for index, match in _phone_candidates(content):
        if _is_educational_number(content, index):
            continue
        score = score_phone_number(content, match, index)
        if best is None or score > best[0]:
            best = (score, match)

    if best is None:
        return []
    score, match = best
    if score >= PHONE_BLOCK_SCORE:
        return [
            Flag(
                type=FLAG_PHONE_NUMBER,
                severity=Severity.HIGH,
                detected=match,
                reason=f"Phone number detected. Contact information sharing is not allowed. "
                f"{_STAY_ON_PLATFORM}",
            )
        ]
    if score >= PHONE_REVIEW_SCORE:
        return [
            Flag(
                type=FLAG_PHONE_NUMBER,
                severity=Severity.LOW,
                detected=match,
                reason="Possible phone number detected (flagged for review).",
            )
        ]
    return []


# ---------------------------------------------------------------------------
# Email addresses
# ---------------------------------------------------------------------------

_EMAIL: Final = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PLATFORM_EMAIL_DOMAINS: Final = frozenset({"prepskul.com"})

_EDUCATIONAL_EMAIL: Final = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(?:example|sample|test|demo|practice)\w*\s*@",
        r"\bemail\s+(?:address\s+)?(?:format|example)\b",
        r"\b(?:contact|reach|email)\s+us\s+at\b",
    )
)

_EMAIL_CONTACT: Final = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(?:contact|reach|text|message|email|e-mail|mail|send|write)\s+(?:me\s+)?"
        r"(?:at|on|via|using|to)?\s*[\w.%+-]+@",
        r"\b(?:my|your|his|her|their)\s+(?:email|e-mail|contact)(?:\s+address)?\s*(?:is|:)?\s*[\w.%+-]+@",
    )
)


def detect_email_addresses(content: str) -> list[Flag]:
    """Flag email addresses, escalating when shared as contact details."""
    suspicious: list[str] = []
    shared_as_contact = False

    for match in _EMAIL.finditer(content):
        email = match.group(0)
        domain = email.rsplit("@", 1)[1].lower()
        if domain in PLATFORM_EMAIL_DOMAINS:
            continue

        window = content[max(0, match.start() - 50) : match.end() + 50]
        if any(pattern.search(window) for pattern in _EDUCATIONAL_EMAIL):
            continue

        suspicious.append(email)
        if any(pattern.search(window) for pattern in _EMAIL_CONTACT):
            shared_as_contact = True

    if not suspicious:
        return []
    if shared_as_contact:
        return [
            Flag(
                type=FLAG_EMAIL,
                severity=Severity.HIGH,
                detected=suspicious[0],
                reason=f"Email address detected. Contact information sharing is not allowed. "
                f"{_STAY_ON_PLATFORM}",
            )
        ]
    return [
        Flag(
            type=FLAG_EMAIL,
            severity=Severity.MEDIUM,
            detected=suspicious[0],
            reason="Possible email address detected (flagged for review).",
        )
    ]


# ---------------------------------------------------------------------------
# Payment bypass
# ---------------------------------------------------------------------------

_PAYMENT_BYPASS: Final = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bpay\s+(?:me\s+)?(?:directly|outside|offline|cash|in\s+person)",
        r"\b(?:bypass|skip|avoid)\s+(?:the\s+)?payment",
        r"\b(?:pay|send)\s+(?:money|cash|funds)\s+(?:directly|outside|to\s+me)",
        r"\b(?:mobile\s+)?money\s+(?:number|account)",
        r"\b(?:mtn|orange)\s+(?:mobile\s+money|momo|money)",
        r"\b(?:fapshi|paypal|stripe)\s+(?:account|email|number)",
        r"\bpay\s+(?:me\s+)?(?:via|through)\s+(?:whatsapp|telegram|direct)",
        r"\b(?:send|transfer)\s+(?:money|payment)\s+(?:to|at)\b",
    )
)

_ALLOWED_PAYMENT_CONTEXTS: Final = (
    "payment through prepskul",
    "pay through prepskul",
    "payment via prepskul",
    "prepskul payment",
    "prepskul platform",
    "payment system",
    "payment feature",
    "through the platform",
)


def detect_payment_requests(content: str) -> list[Flag]:
    """Flag attempts to take payment outside the platform."""
    lowered = content.lower()
    if any(context in lowered for context in _ALLOWED_PAYMENT_CONTEXTS):
        return []

    for pattern in _PAYMENT_BYPASS:
        match = pattern.search(content)
        if match:
            return [
                Flag(
                    type=FLAG_PAYMENT_REQUEST,
                    severity=Severity.CRITICAL,
                    detected=match.group(0),
                    reason="Attempt to bypass the payment system or request off-platform "
                    "payment detected. All payments must be made through PrepSkul.",
                )
            ]
    return []


# ---------------------------------------------------------------------------
# Social media and external contact
# ---------------------------------------------------------------------------

_SOCIAL_PLATFORMS: Final = (
    (
        "WhatsApp",
        re.compile(r"\b(?:whatsapp|wa)\s+(?:me|us)\b|\b(?:on|via|through)\s+whatsapp\b", re.IGNORECASE),
        Severity.HIGH,
    ),
    (
        "Telegram",
        re.compile(
            r"\b(?:telegram|tg)\s+(?:me|us)\b|\b(?:on|via|through)\s+telegram\b|\btelegram\s+@\w+",
            re.IGNORECASE,
        ),
        Severity.HIGH,
    ),
    (
        "Instagram",
        re.compile(r"\b(?:instagram|ig)\s+(?:handle|account|@)|\b(?:on|via)\s+instagram\b", re.IGNORECASE),
        Severity.MEDIUM,
    ),
    (
        "Facebook",
        re.compile(
            r"\b(?:facebook|fb)\s+(?:profile|page|account|me)\b|\b(?:on|via)\s+facebook\b",
            re.IGNORECASE,
        ),
        Severity.MEDIUM,
    ),
    (
        "Twitter/X",
        re.compile(r"\b(?:twitter|x)\s+(?:handle|account|@)|\b(?:on|via)\s+twitter\b", re.IGNORECASE),
        Severity.MEDIUM,
    ),
    (
        "Snapchat",
        re.compile(r"\b(?:snapchat|sc)\s+(?:username|handle|add|me)\b", re.IGNORECASE),
        Severity.MEDIUM,
    ),
    (
        "TikTok",
        re.compile(r"\btiktok\s+@?[\w.]+", re.IGNORECASE),
        Severity.MEDIUM,
    ),
)

_EXTERNAL_CONTACT: Final = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(?:contact|reach)\s+(?:me\s+)?(?:outside|off[\s-]platform|directly)\b",
        r"\b(?:let'?s|we)\s+(?:talk|chat|communicate)\s+(?:outside|off[\s-]platform|directly)\b",
        r"\b(?:move|switch)\s+(?:this\s+|the\s+)?(?:conversation\s+|chat\s+)?to\s+(?:whatsapp|telegram|email)\b",
    )
)


def detect_social_media(content: str) -> list[Flag]:
    """Flag social media handles, one flag per platform."""
    return [
        Flag(
            type=FLAG_SOCIAL_MEDIA,
            severity=severity,
            detected=platform,
            reason=f"{platform} contact information detected. External contact sharing is "
            f"not allowed. {_STAY_ON_PLATFORM}",
        )
        for platform, pattern, severity in _SOCIAL_PLATFORMS
        if pattern.search(content)
    ]


def detect_external_contact(content: str) -> list[Flag]:
    """Flag attempts to move the conversation off the platform."""
    if any(pattern.search(content) for pattern in _EXTERNAL_CONTACT):
        return [
            Flag(
                type=FLAG_EXTERNAL_CONTACT,
                severity=Severity.HIGH,
                detected="external_contact_attempt",
                reason=f"Attempt to move communication outside the platform detected. "
                f"{_STAY_ON_PLATFORM}",
            )
        ]
    return []


# ---------------------------------------------------------------------------
# Language
# ---------------------------------------------------------------------------

PROFANITY: Final = (
    "fuck", "fucking", "fucked",
    "shit", "shitting",
    "damn", "damned",
    "hell",
    "bitch", "bitches",
    "ass", "asses",
    "bastard",
    "crap",
)
_PROFANITY: Final = re.compile(r"\b(?:" + "|".join(PROFANITY) + r")\b", re.IGNORECASE)

_HARASSMENT: Final = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(?:you'?re|you\s+are|you)\s+(?:so\s+)?(?:stupid|an?\s+idiot|idiot|dumb|a\s+fool|fool)\b",
        r"\bshut\s+(?:up|your\s+mouth)\b",
        r"\bgo\s+(?:to\s+hell|die)\b",
    )
)

CAPS_RATIO_LIMIT: Final = 0.5
CAPS_MIN_LENGTH: Final = 10


def detect_inappropriate_language(content: str) -> list[Flag]:
    """Flag profanity, shouting and harassment."""
    flags: list[Flag] = []

    if _PROFANITY.search(content):
        flags.append(
            Flag(
                type=FLAG_INAPPROPRIATE_LANGUAGE,
                severity=Severity.HIGH,
                detected="profanity",
                reason="Inappropriate language detected. Please maintain professional communication.",
            )
        )

    if content:
        caps_ratio = sum(1 for char in content if "A" <= char <= "Z") / len(content)
        if caps_ratio > CAPS_RATIO_LIMIT and len(content) > CAPS_MIN_LENGTH:
            flags.append(
                Flag(
                    type=FLAG_INAPPROPRIATE_LANGUAGE,
                    severity=Severity.LOW,
                    detected="excessive_caps",
                    reason="Excessive use of capital letters detected. "
                    "Please use normal capitalization.",
                )
            )

    if any(pattern.search(content) for pattern in _HARASSMENT):
        flags.append(
            Flag(
                type=FLAG_HARASSMENT,
                severity=Severity.HIGH,
                detected="harassment",
                reason="Harassing language detected. Please maintain respectful communication.",
            )
        )

    return flags


# ---------------------------------------------------------------------------
# Spam
# ---------------------------------------------------------------------------

SHORT_REPLIES: Final = frozenset(
    {
        "hi", "hey", "ok", "okay", "yes", "no", "yeah", "yep", "nope",
        "sure", "thanks", "thank you", "ty", "np", "yw",
        "bye", "ciao", "ttyl", "brb", "lol", "haha", "hahaha",
        "👍", "👋", "😊", "😀", "😁", "🙂", "👌", "✌️",
    }
)

_REPEATED_CHARACTERS: Final = re.compile(r"(.)\1{4,}")
_URL: Final = re.compile(r"https?://\S+")
_PUNCTUATION_RUN: Final = re.compile(r"[!?.]{2,}")

MAX_URLS: Final = 2
PUNCTUATION_RATIO_LIMIT: Final = 0.1
PUNCTUATION_MIN_LENGTH: Final = 20


def detect_spam(content: str) -> list[Flag]:
    """Flag spam-like messages."""
    flags: list[Flag] = []
    trimmed = content.strip().lower()
    if not trimmed:
        return flags

    if len(trimmed) == 1 and trimmed not in SHORT_REPLIES:
        flags.append(
            Flag(
                type=FLAG_SPAM,
                severity=Severity.LOW,
                detected="too_short",
                reason="Message is too short.",
            )
        )

    if len(trimmed) < 3 and trimmed in SHORT_REPLIES:
        return flags

    if _REPEATED_CHARACTERS.search(content):
        flags.append(
            Flag(
                type=FLAG_SPAM,
                severity=Severity.MEDIUM,
                detected="repeated_characters",
                reason="Repeated characters detected. This may be spam.",
            )
        )

    if len(_URL.findall(content)) > MAX_URLS:
        flags.append(
            Flag(
                type=FLAG_SPAM,
                severity=Severity.MEDIUM,
                detected="multiple_urls",
                reason="Multiple URLs detected. This may be spam.",
            )
        )

    punctuation_ratio = len(_PUNCTUATION_RUN.findall(content)) / len(content)
    if punctuation_ratio > PUNCTUATION_RATIO_LIMIT and len(content) > PUNCTUATION_MIN_LENGTH:
        flags.append(
            Flag(
                type=FLAG_SPAM,
                severity=Severity.LOW,
                detected="excessive_punctuation",
                reason="Excessive punctuation detected.",
            )
        )

    return flags
