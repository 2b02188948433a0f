from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

from orvillecontrol.errors import FormatError


class ObjectKind(str, Enum):
    COL = "COL"  # sub-menu
    NUM = "NUM"  # bounded float
    SET = "SET"  # enumerated choice
    CON = "CON"  # read-only meter
    TRG = "TRG"  # fire-and-forget action
    INF = "INF"  # display-only text

    def __str__(self) -> str:
        return self.value


PARAMETER_KINDS = frozenset({"NUM", "SET", "CON", "TRG", "INF"})

# Softkey captions longer than this are not shown as softkeys by the unit.
MAX_SOFTKEY_TAG_LEN = 10


@dataclass(frozen=True)
class ParameterObject:
    """One record of an OBJECTINFO dump.

    Line layout: <kind> <position> <key> <parent> '<label>' '<tag>' <kind-specific...>
    """

    kind: str
    position: str
    key: str
    parent_key: str
    label: str
    tag: str
    value: str = ""

    @property
    def is_parameter(self) -> bool:
        return self.kind in PARAMETER_KINDS

    @property
    def is_menu(self) -> bool:
        return self.kind == ObjectKind.COL.value

    @property
    def caption(self) -> str:
        """Short caption for breadcrumbs: the tag, else the first word of the label."""

        tag = self.tag.strip()
        if tag:
            return tag
        words = self.label.split()
        return words[0] if words else self.key

    def display_value(self, cached_values: Mapping[str, str]) -> str:
        return cached_values.get(self.key) or self.value

    def render(self, cached_values: Mapping[str, str]) -> str:
        return render_label(self.label, self.display_value(cached_values))


@dataclass(frozen=True)
class MenuObject(ParameterObject):
    @property
    def is_softkey(self) -> bool:
        tag = self.tag.strip()
        return bool(tag) and len(tag) <= MAX_SOFTKEY_TAG_LEN


@dataclass(frozen=True)
class NumericObject(ParameterObject):
    minimum: str = ""
    maximum: str = ""
    step: str = ""

    @property
    def number(self) -> float | None:
        return _to_float(self.value)

    @property
    def min_value(self) -> float | None:
        return _to_float(self.minimum)

    @property
    def max_value(self) -> float | None:
        return _to_float(self.maximum)

    @property
    def step_value(self) -> float | None:
        return _to_float(self.step)

    def accepts(self, text: str) -> bool:
        """True when `text` is a number inside [min, max] (open bounds when absent)."""

        value = _to_float(text)
        if value is None:
            return False
        lo = self.min_value
        hi = self.max_value
        if lo is not None and value < lo:
            return False
        if hi is not None and value > hi:
            return False
        return True


class SetDialect(Enum):
    COUNT = "count"  # <index> <desc> <N> <desc1> ... <descN>
    PAIRS = "pairs"  # <index> <desc> <idx1> <desc1> <idx2> <desc2> ...


@dataclass(frozen=True)
class IndexCodec:
    """Maps SET indices between wire text and ints, in one base."""

    base: int = 10

    def decode(self, text: str) -> int | None:
        try:
            return int(text.strip(), self.base)
        except ValueError:
            return None

    def encode(self, index: int) -> str:
        if self.base == 16:
            return f"{index:x}"
        return str(index)


DECIMAL_INDEX = IndexCodec(10)
HEX_INDEX = IndexCodec(16)


@dataclass(frozen=True)
class SetOption:
    index: int
    description: str


@dataclass(frozen=True)
class SetObject(ParameterObject):
    options: tuple[SetOption, ...] = ()
    dialect: SetDialect = SetDialect.COUNT
    codec: IndexCodec = DECIMAL_INDEX

    def selected_index(self, value_text: str | None = None) -> int | None:
        """Resolve "<index> <description>" to an option index.

        Falls back to matching the description when the index token doesn't
        decode in this field's base.
        """

        text = (self.value if value_text is None else value_text).strip()
        if not text:
            return None

        index_text, _, description = text.partition(" ")
        index = self.codec.decode(index_text)
        if index is not None and self.option_for(index) is not None:
            return index

        description = description.strip() or text
        for option in self.options:
            if option.description == description:
                return option.index
        return index

    def option_for(self, index: int) -> SetOption | None:
        return next((o for o in self.options if o.index == index), None)

    def encode_index(self, index: int) -> str:
        return self.codec.encode(index)

    def value_for_index(self, index: int) -> str:
        """The value text the device reports once `index` is selected."""

        option = self.option_for(index)
        description = option.description if option is not None else ""
        return f"{self.encode_index(index)} {description}".strip()

    def display_value(self, cached_values: Mapping[str, str]) -> str:
        value = super().display_value(cached_values)
        index_text, _, description = value.partition(" ")
        return description.strip() or index_text


@dataclass(frozen=True)
class MeterObject(ParameterObject):
    @property
    def level(self) -> float:
        return _to_float(self.value) or 0.0


@dataclass(frozen=True)
class TriggerObject(ParameterObject):
    def render(self, cached_values: Mapping[str, str]) -> str:
        return self.label


@dataclass(frozen=True)
class InfoObject(ParameterObject):
    def display_value(self, cached_values: Mapping[str, str]) -> str:
        return cached_values.get(self.key) or self.value or self.tag


@dataclass(frozen=True)
class UnknownObject(ParameterObject):
    """Kinds we don't model yet; kept so device extensions aren't dropped."""


def _to_float(text: str) -> float | None:
    try:
        return float(text)
    except (TypeError, ValueError):
        return None


def split_line(line: str) -> list[str]:
    """Whitespace tokenizer; a single-quoted span is one token (kept verbatim, may be empty)."""

    parts: list[str] = []
    current = ""
    in_quote = False
    for char in line:
        if char == "'" and not in_quote:
            in_quote = True
            if current.strip():
                parts.append(current.strip())
            current = ""
        elif char == "'" and in_quote:
            in_quote = False
            parts.append(current)
            current = ""
        elif char.isspace() and not in_quote:
            if current.strip():
                parts.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        parts.append(current.strip())
    return parts


_DECIMAL_RE = re.compile(r"^\d+$")
_INDEX_RE = re.compile(r"^[0-9A-Fa-f]+$")
_HEX_LETTER_RE = re.compile(r"[A-Fa-f]")


def detect_set_dialect(tokens: Sequence[str]) -> SetDialect:
    """Decide how the option list of a SET line is laid out.

    `tokens` are the tokens following the current description. Firmware
    revisions disagree: older ones send a decimal option count followed by
    the descriptions, newer ones send (index, description) pairs. A decimal
    first token is read as a count unless the tokens are unambiguously
    pairs: at least two of them, with no index-like description.
    """

    if not tokens:
        return SetDialect.COUNT

    first, rest = tokens[0], tokens[1:]
    if _DECIMAL_RE.match(first) and int(first) == len(rest):
        return SetDialect.COUNT

    if len(tokens) % 2 or not all(_INDEX_RE.match(t) for t in tokens[0::2]):
        return SetDialect.COUNT

    if _DECIMAL_RE.match(first):
        # A count line is still possible; only a clean pair list overrides it.
        if len(tokens) < 4 or any(_INDEX_RE.match(t) for t in tokens[1::2]):
            return SetDialect.COUNT

    return SetDialect.PAIRS


def _parse_set_options(tokens: Sequence[str]) -> tuple[SetDialect, IndexCodec, tuple[SetOption, ...]]:
    dialect = detect_set_dialect(tokens)

    if dialect is SetDialect.PAIRS:
        index_tokens = list(tokens[0::2])
        codec = HEX_INDEX if any(_HEX_LETTER_RE.search(t) for t in index_tokens) else DECIMAL_INDEX
        options = []
        for index_text, description in zip(index_tokens, tokens[1::2], strict=True):
            index = codec.decode(index_text)
            if index is None:
                raise FormatError(f"Bad SET option index {index_text!r}")
            options.append(SetOption(index=index, description=description))
        return dialect, codec, tuple(options)

    # Count dialect: options are indexed by their position in the dump.
    if tokens and _DECIMAL_RE.match(tokens[0]):
        count = int(tokens[0])
        descriptions = list(tokens[1 : 1 + count])
        descriptions.extend([""] * (count - len(descriptions)))
    else:
        descriptions = list(tokens)

    options = tuple(SetOption(index=i, description=d) for i, d in enumerate(descriptions))
    return dialect, DECIMAL_INDEX, options


def parse_line(text: str) -> ParameterObject:
    """Parse one OBJECTINFO dump line into a typed record."""

    tokens = split_line(text)
    if len(tokens) < 4:
        raise FormatError(f"Dump line has {len(tokens)} tokens, need at least 4: {text!r}")

    kind, position, key, parent_key = tokens[0], tokens[1], tokens[2], tokens[3]
    label = tokens[4] if len(tokens) > 4 else ""
    tag = tokens[5] if len(tokens) > 5 else ""
    extra = tokens[6:]

    common = dict(kind=kind, position=position, key=key, parent_key=parent_key, label=label, tag=tag)

    if kind == "COL":
        return MenuObject(**common)

    if kind == "NUM":
        padded = extra + [""] * (4 - len(extra))
        return NumericObject(
            **common,
            value=padded[0] or "0",
            minimum=padded[1],
            maximum=padded[2],
            step=padded[3],
        )

    if kind == "SET":
        index_text = extra[0] if extra else ""
        description = extra[1] if len(extra) > 1 else ""
        dialect, codec, options = _parse_set_options(extra[2:])
        return SetObject(
            **common,
            value=f"{index_text} {description}".strip(),
            options=options,
            dialect=dialect,
            codec=codec,
        )

    if kind == "CON":
        return MeterObject(**common, value=extra[0] if extra else "")

    if kind == "TRG":
        return TriggerObject(**common)

    if kind == "INF":
        return InfoObject(**common)

    return UnknownObject(**common, value=" ".join(extra))


def parse_dump(text: str) -> list[ParameterObject]:
    """Parse a whole OBJECTINFO dump; order is the on-device display order."""

    lines = [line.replace("\x00", "").strip() for line in text.replace("\r", "").split("\n")]
    return [parse_line(line) for line in lines if line]


@dataclass(frozen=True)
class MenuDump:
    """A parsed dump: the main object (the requested menu) and its children."""

    main: ParameterObject
    children: tuple[ParameterObject, ...] = ()

    @classmethod
    def from_objects(cls, objects: Sequence[ParameterObject]) -> MenuDump:
        if not objects:
            raise FormatError("Empty dump")
        return cls(main=objects[0], children=tuple(objects[1:]))

    @classmethod
    def from_text(cls, text: str) -> MenuDump:
        return cls.from_objects(parse_dump(text))

    @property
    def key(self) -> str:
        return self.main.key

    @property
    def parameters(self) -> tuple[ParameterObject, ...]:
        return tuple(o for o in self.children if o.is_parameter)

    @property
    def has_parameters(self) -> bool:
        return any(o.is_parameter for o in self.children)

    @property
    def submenus(self) -> tuple[MenuObject, ...]:
        return tuple(o for o in self.children if isinstance(o, MenuObject))

    @property
    def softkeys(self) -> tuple[MenuObject, ...]:
        return tuple(o for o in self.submenus if o.is_softkey)

    @property
    def graphic_eq_bands(self) -> tuple[NumericObject, ...]:
        # Array-like parameters (graphic EQ bands) share position "a".
        return tuple(o for o in self.children if isinstance(o, NumericObject) and o.position == "a")

    def find(self, key: str) -> ParameterObject | None:
        if self.main.key == key:
            return self.main
        return next((o for o in self.children if o.key == key), None)


_FORMAT_RE = re.compile(r"%(-)?(\d*)(\.\d*)?f|%(-)?(\d*)s|%%")


def render_label(template: str, value: str) -> str:
    """Substitute a value into a device caption (`%[-w][.p]f`, `%[-w]s`, `%%`)."""

    def _replace(m: re.Match[str]) -> str:
        text = m.group(0)
        if text == "%%":
            return "%"

        if text.endswith("f"):
            left, width, precision = m.group(1), m.group(2), m.group(3)
            number = _to_float(value)
            if number is None:
                out = value
            else:
                digits = int(precision[1:] or "0") if precision else 0
                out = f"{number:.{digits}f}"
        else:
            left, width = m.group(4), m.group(5)
            out = value

        if width:
            out = out.ljust(int(width)) if left else out.rjust(int(width))
        return out

    if "%" not in template:
        return f"{template} {value}".strip() if value else template
    return _FORMAT_RE.sub(_replace, template)
