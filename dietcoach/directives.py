"""
Directive tags embedded in model replies.

The model appends bracketed instructions such as ``[[ADD: 420]]`` or
``[[BUTTONS: Yes, Not yet]]`` to its text. They are stripped before display and
turned into a closed set of directive variants. The source is an untrusted text
generator, so anything malformed degrades to "no directive" instead of raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TypeVar, Union


@dataclass(frozen=True)
class AddCalories:
    kcal: int


@dataclass(frozen=True)
class SetTarget:
    kcal: int


@dataclass(frozen=True)
class AddWater:
    ml: int


@dataclass(frozen=True)
class QuickReplies:
    labels: tuple[str, ...]


@dataclass(frozen=True)
class GenerateImage:
    prompt: str


Directive = Union[AddCalories, SetTarget, AddWater, QuickReplies, GenerateImage]

D = TypeVar("D", AddCalories, SetTarget, AddWater, QuickReplies, GenerateImage)


_TAG_RE = re.compile(
    r"\[\[\s*(ADD|TARGET|WATER|BUTTONS|GENERATE_IMAGE)\s*:\s*(.*?)\s*\]\]",
    flags=re.IGNORECASE | re.S,
)
# anything longer than this is not a plausible kcal or ml amount
_INT_RE = re.compile(r"^\d{1,9}$")
_BLANK_LINES_RE = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)+")


@dataclass(frozen=True)
class ParsedReply:
    clean_text: str
    directives: tuple[Directive, ...] = ()

    def first(self, kind: type[D]) -> D | None:
        for d in self.directives:
            if isinstance(d, kind):
                return d
        return None

    @property
    def calories_to_add(self) -> int | None:
        d = self.first(AddCalories)
        return d.kcal if d else None

    @property
    def new_target(self) -> int | None:
        d = self.first(SetTarget)
        return d.kcal if d else None

    @property
    def water_to_add(self) -> int | None:
        d = self.first(AddWater)
        return d.ml if d else None

    @property
    def buttons(self) -> tuple[str, ...] | None:
        d = self.first(QuickReplies)
        return d.labels if d else None

    @property
    def image_prompt(self) -> str | None:
        d = self.first(GenerateImage)
        return d.prompt if d else None


def _parse_int(payload: str) -> int | None:
    s = payload.strip()
    if not _INT_RE.match(s):
        return None
    return int(s)


def _to_directive(tag: str, payload: str) -> Directive | None:
    tag = tag.upper()
    if tag in {"ADD", "TARGET", "WATER"}:
        n = _parse_int(payload)
        if n is None:
            return None
        if tag == "ADD":
            return AddCalories(n)
        if tag == "TARGET":
            return SetTarget(n)
        return AddWater(n)
    if tag == "BUTTONS":
        labels = tuple(b.strip() for b in payload.split(",") if b.strip())
        return QuickReplies(labels) if labels else None
    if tag == "GENERATE_IMAGE":
        prompt = " ".join(payload.split())
        return GenerateImage(prompt) if prompt else None
    return None


def parse_reply(text: str | None) -> ParsedReply:
    raw = text or ""
    found: dict[str, Directive] = {}

    for m in _TAG_RE.finditer(raw):
        tag = m.group(1).upper()
        # first well-formed instance wins
        if tag in found:
            continue
        d = _to_directive(tag, m.group(2))
        if d is not None:
            found[tag] = d

    clean, removed = _TAG_RE.subn("", raw)
    if removed:
        # only tidy the gaps left by removed tags
        clean = _BLANK_LINES_RE.sub("\n\n", clean)
    clean = clean.strip()

    order = ("TARGET", "ADD", "WATER", "BUTTONS", "GENERATE_IMAGE")
    return ParsedReply(clean_text=clean, directives=tuple(found[t] for t in order if t in found))
