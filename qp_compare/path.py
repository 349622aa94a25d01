import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator, Optional, Pattern, Union

from qp_compare.errors import InvalidPathSyntax

FRAGMENT_PREFIX = '... on '
FLATTEN_MARKER = '@'

TypeConditions = tuple[str, ...]


# Compiled on first use and shared by every parse afterwards.
@lru_cache(maxsize=None)
def type_conditions_pattern() -> Pattern[str]:
    return re.compile(r'^(?P<element>[^|\[\]]*)(?:\|\[(?P<conditions>[^|\[\]]*)\])?$')


@lru_cache(maxsize=None)
def index_pattern() -> Pattern[str]:
    # Only canonical ASCII integers; anything else, such as `01`, is a key.
    return re.compile(r'0|[1-9][0-9]*')


# Absent and empty conditions both mean "no restriction"; only their string
# forms differ.
def _conditions_key(type_conditions: Optional[TypeConditions]) -> Optional[frozenset[str]]:
    return frozenset(type_conditions) if type_conditions else None


def _format_conditions(type_conditions: Optional[TypeConditions]) -> str:
    if type_conditions is None:
        return ''
    return f'|[{",".join(type_conditions)}]'


@dataclass(frozen=True, eq=False)
class KeyElement:
    name: str
    type_conditions: Optional[TypeConditions] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyElement):
            return NotImplemented
        return self.name == other.name and _conditions_key(
            self.type_conditions
        ) == _conditions_key(other.type_conditions)

    def __hash__(self) -> int:
        return hash((KeyElement, self.name, _conditions_key(self.type_conditions)))

    def __str__(self) -> str:
        return f'{self.name}{_format_conditions(self.type_conditions)}'


@dataclass(frozen=True)
class IndexElement:
    index: int

    def __str__(self) -> str:
        return str(self.index)


@dataclass(frozen=True, eq=False)
class FlattenElement:
    type_conditions: Optional[TypeConditions] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FlattenElement):
            return NotImplemented
        return _conditions_key(self.type_conditions) == _conditions_key(other.type_conditions)

    def __hash__(self) -> int:
        return hash((FlattenElement, _conditions_key(self.type_conditions)))

    def __str__(self) -> str:
        return f'{FLATTEN_MARKER}{_format_conditions(self.type_conditions)}'


@dataclass(frozen=True)
class FragmentElement:
    type_name: str

    def __str__(self) -> str:
        return f'{FRAGMENT_PREFIX}{self.type_name}'


PathElement = Union[KeyElement, IndexElement, FlattenElement, FragmentElement]


def _split_type_conditions(source: str, text: str) -> tuple[str, Optional[TypeConditions]]:
    match = type_conditions_pattern().match(text)
    if match is None:
        raise InvalidPathSyntax(source, f'malformed type conditions in "{text}"')

    conditions = match.group('conditions')
    if conditions is None:
        return match.group('element'), None
    if conditions == '':
        return match.group('element'), ()

    type_conditions = tuple(conditions.split(','))
    if not all(type_conditions):
        raise InvalidPathSyntax(source, f'empty type condition in "{text}"')

    return match.group('element'), type_conditions


def parse_element(text: str, source: Optional[str] = None) -> PathElement:
    source = source if source is not None else text

    if text.startswith(FRAGMENT_PREFIX):
        type_name = text[len(FRAGMENT_PREFIX) :]
        if not type_name or type_name.strip() != type_name or '|' in type_name:
            raise InvalidPathSyntax(source, f'invalid fragment element "{text}"')
        return FragmentElement(type_name)
    if text.startswith('...'):
        raise InvalidPathSyntax(source, f'fragment element must start with "{FRAGMENT_PREFIX}"')

    element, type_conditions = _split_type_conditions(source, text)

    if element.startswith(FLATTEN_MARKER):
        if element != FLATTEN_MARKER:
            raise InvalidPathSyntax(source, f'unexpected text after "@" in "{text}"')
        return FlattenElement(type_conditions)

    if not element:
        raise InvalidPathSyntax(source, 'empty path element')

    if index_pattern().fullmatch(element):
        if type_conditions is not None:
            raise InvalidPathSyntax(source, f'index element "{text}" cannot have type conditions')
        return IndexElement(int(element))

    return KeyElement(element, type_conditions)


@dataclass(frozen=True)
class Path:
    elements: tuple[PathElement, ...] = ()

    @classmethod
    def parse(cls, text: str) -> 'Path':
        if text == '':
            return cls()
        if not text.startswith('/'):
            raise InvalidPathSyntax(text, 'path must start with "/"')

        return cls(tuple(parse_element(part, text) for part in text[1:].split('/')))

    @classmethod
    def from_json(cls, value: list[Union[str, int]]) -> 'Path':
        elements: list[PathElement] = []
        for item in value:
            # bool is an int subclass but never a valid index
            if isinstance(item, int) and not isinstance(item, bool):
                elements.append(IndexElement(item))
            elif isinstance(item, str):
                elements.append(parse_element(item, str(value)))
            else:
                raise InvalidPathSyntax(str(value), f'unexpected path element {item!r}')
        return cls(tuple(elements))

    def to_json(self) -> list[Union[str, int]]:
        return [
            element.index if isinstance(element, IndexElement) else str(element)
            for element in self.elements
        ]

    def __iter__(self) -> Iterator[PathElement]:
        return iter(self.elements)

    def __len__(self) -> int:
        return len(self.elements)

    def __str__(self) -> str:
        return ''.join(f'/{element}' for element in self.elements)


def parse_path(text: str) -> Path:
    return Path.parse(text)


def format_path(path: Path) -> str:
    return str(path)
