"""Immutable knowledge base of known failure signatures.

The table lives in a versioned YAML file and is loaded once into a read-only mapping. Extending it is a data
edit, never a runtime call, so a given table always produces the same diagnosis for the same evidence.
"""

from __future__ import annotations

import logging
import re
import string
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from bootsleuth.core.errors import KnowledgeBaseError
from bootsleuth.core.models import ErrorCodeEntry

logger = logging.getLogger(__name__)

DEFAULT_TABLE_PATH = Path(__file__).resolve().parent / "error_codes.yaml"

_CODE_RE = re.compile(r"^0x[0-9a-f]{8}$")
COMMAND_PLACEHOLDERS = frozenset({"drive", "letter", "root", "windir"})


def normalize_code(code: str) -> str:
    """'C000000E' / '0XC000000E' / ' 0xc000000e ' -> '0xc000000e'."""
    s = str(code or "").strip().lower()
    if not s.startswith("0x"):
        s = "0x" + s
    return s


class KnowledgeBase:
    """Read-only mapping of status code -> `ErrorCodeEntry`."""

    def __init__(self, entries: Mapping[str, ErrorCodeEntry], *, version: Optional[int] = None, source: str = ""):
        self._entries: Mapping[str, ErrorCodeEntry] = MappingProxyType(dict(entries))
        self.version = version
        self.source = source

    def lookup(self, code: str) -> Optional[ErrorCodeEntry]:
        """Exact match after normalization. None means NotFound."""
        return self._entries.get(normalize_code(code))

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and normalize_code(code) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    @property
    def entries(self) -> Mapping[str, ErrorCodeEntry]:
        return self._entries


def _check_command_template(command: str, *, source: str, idx: int) -> None:
    """Literal braces must be doubled (`{{default}}`); only the known placeholders are allowed."""
    try:
        fields = [f for _, f, _, _ in string.Formatter().parse(command) if f is not None]
    except ValueError as e:
        raise KnowledgeBaseError(f"{source}: codes[{idx}] has a malformed command template: {e}") from e
    unknown = sorted({f for f in fields if f not in COMMAND_PLACEHOLDERS})
    if unknown:
        raise KnowledgeBaseError(
            f"{source}: codes[{idx}] command uses unknown placeholder(s) {unknown}; "
            f"allowed: {sorted(COMMAND_PLACEHOLDERS)} (escape literal braces as {{{{...}}}})"
        )


def parse_table(doc: Any, *, source: str = "<memory>") -> KnowledgeBase:
    if not isinstance(doc, dict):
        raise KnowledgeBaseError(f"{source}: top-level document must be a mapping")
    version = doc.get("version")
    if not isinstance(version, int):
        raise KnowledgeBaseError(f"{source}: missing integer `version`")
    rows = doc.get("codes")
    if not isinstance(rows, list):
        raise KnowledgeBaseError(f"{source}: `codes` must be a list")

    entries: Dict[str, ErrorCodeEntry] = {}
    for idx, row in enumerate(rows):
        if not isinstance(row, dict):
            raise KnowledgeBaseError(f"{source}: codes[{idx}] must be a mapping")
        try:
            entry = ErrorCodeEntry(**row)
        except ValidationError as e:
            raise KnowledgeBaseError(f"{source}: codes[{idx}] is invalid: {e}") from e
        if not _CODE_RE.match(entry.code):
            raise KnowledgeBaseError(f"{source}: codes[{idx}] has malformed code {entry.code!r}")
        if entry.command:
            _check_command_template(entry.command, source=source, idx=idx)
        if entry.code in entries:
            raise KnowledgeBaseError(f"{source}: duplicate code {entry.code}")
        entries[entry.code] = entry

    return KnowledgeBase(entries, version=version, source=source)


def load_knowledge_base(path: Optional[Union[str, Path]] = None) -> KnowledgeBase:
    p = Path(path) if path else DEFAULT_TABLE_PATH
    try:
        with open(p, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except OSError as e:
        raise KnowledgeBaseError(f"{p}: cannot read knowledge base: {e}") from e
    except yaml.YAMLError as e:
        raise KnowledgeBaseError(f"{p}: invalid YAML: {e}") from e

    kb = parse_table(doc, source=str(p))
    logger.debug("Loaded knowledge base v%s (%d codes) from %s", kb.version, len(kb), p)
    return kb


@lru_cache(maxsize=1)
def get_default_knowledge_base() -> KnowledgeBase:
    return load_knowledge_base(DEFAULT_TABLE_PATH)
