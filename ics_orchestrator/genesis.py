"""
Genesis document surgery.

Patches are plain ``(path, value)`` records applied to a JSON tree, so the
consumer's genesis merge can be exercised without a chain binary.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple


@dataclass(frozen=True)
class Patch:
    path: Tuple[str, ...]
    value: Any

    @staticmethod
    def at(dotted: str, value: Any) -> "Patch":
        return Patch(tuple(dotted.split(".")), value)


def apply_patches(document: Dict[str, Any], patches: Iterable[Patch]) -> Dict[str, Any]:
    """
    Return a copy of ``document`` with every patched subtree replaced wholesale.

    Missing parents are created. Applying the same patches twice gives the
    same result as applying them once.
    """
    result = copy.deepcopy(document)
    for patch in patches:
        if not patch.path:
            raise ValueError("empty patch path")
        node = result
        for key in patch.path[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[patch.path[-1]] = copy.deepcopy(patch.value)
    return result


def substitute_denom(document: Dict[str, Any], old: str, new: str) -> Dict[str, Any]:
    """Replace every JSON string exactly equal to ``old`` with ``new``."""
    text = json.dumps(document)
    return json.loads(text.replace(json.dumps(old), json.dumps(new)))


def consumer_patches(ccvconsumer: Any, accounts: Any, bank: Any) -> List[Patch]:
    return [
        Patch.at("app_state.ccvconsumer", ccvconsumer),
        Patch.at("app_state.auth.accounts", accounts),
        Patch.at("app_state.bank", bank),
    ]


def patch_consumer_genesis(
    document: Dict[str, Any], ccvconsumer: Any, accounts: Any, bank: Any,
    base_denom: str, native_denom: str = "stake",
) -> Dict[str, Any]:
    patched = apply_patches(document, consumer_patches(ccvconsumer, accounts, bank))
    return substitute_denom(patched, native_denom, base_denom)


def read_genesis(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_genesis(path: Path, document: Dict[str, Any]) -> str:
    text = json.dumps(document)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return text
