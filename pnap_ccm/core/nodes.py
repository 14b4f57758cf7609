# pnap_ccm/core/nodes.py
"""
Node helpers: label selector matching and provider ID parsing
"""

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Sequence

from ..exceptions import ConfigurationError, ValidationError
from ..schemas.service import Node

PROVIDER_NAME = "phoenixnap"

_KEY = r'[A-Za-z0-9][-A-Za-z0-9_./]*'
_VALUE = r'[-A-Za-z0-9_.]*'

_SET_RE = re.compile(rf'^({_KEY})\s+(in|notin)\s+\((.*)\)$')
_EQUALITY_RE = re.compile(rf'^({_KEY})\s*(==|!=|=)\s*({_VALUE})$')
_EXISTS_RE = re.compile(rf'^(!?)\s*({_KEY})$')


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str  # in, notin, exists, !
    values: FrozenSet[str] = frozenset()

    def matches(self, labels: Dict[str, str]) -> bool:
        if self.operator == "exists":
            return self.key in labels
        if self.operator == "!":
            return self.key not in labels
        if self.operator == "in":
            return self.key in labels and labels[self.key] in self.values
        # notin also matches nodes without the label
        return self.key not in labels or labels[self.key] not in self.values


@dataclass(frozen=True)
class LabelSelector:
    """All requirements must match; no requirements matches everything"""
    requirements: tuple = ()

    def matches(self, labels: Dict[str, str]) -> bool:
        return all(r.matches(labels) for r in self.requirements)

    def __str__(self) -> str:
        parts = []
        for r in self.requirements:
            if r.operator == "exists":
                parts.append(r.key)
            elif r.operator == "!":
                parts.append(f"!{r.key}")
            else:
                parts.append(f"{r.key} {r.operator} ({','.join(sorted(r.values))})")
        return ",".join(parts)


def _split_terms(expression: str) -> List[str]:
    """Split on commas that are not inside parentheses"""
    terms, depth, current = [], 0, []
    for char in expression:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise ConfigurationError(f"invalid node selector '{expression}': unbalanced ')'")
        if char == "," and depth == 0:
            terms.append("".join(current))
            current = []
        else:
            current.append(char)
    if depth != 0:
        raise ConfigurationError(f"invalid node selector '{expression}': unbalanced '('")
    terms.append("".join(current))
    return terms


def parse_selector(expression: str) -> LabelSelector:
    """
    Parse a label selector expression

    Supports key=value, key==value, key!=value, key in (a,b),
    key notin (a,b), key and !key, joined by commas.
    An empty expression selects every node.

    Raises:
        ConfigurationError: If the expression is malformed
    """
    expression = (expression or "").strip()
    if not expression:
        return LabelSelector()

    requirements = []
    for term in _split_terms(expression):
        term = term.strip()
        if not term:
            raise ConfigurationError(f"invalid node selector '{expression}': empty requirement")

        match = _SET_RE.match(term)
        if match:
            key, operator, raw_values = match.groups()
            values = frozenset(v.strip() for v in raw_values.split(",") if v.strip())
            if not values:
                raise ConfigurationError(f"invalid node selector '{expression}': empty value set for {key}")
            requirements.append(Requirement(key, operator, values))
            continue

        match = _EQUALITY_RE.match(term)
        if match:
            key, operator, value = match.groups()
            operator = "notin" if operator == "!=" else "in"
            requirements.append(Requirement(key, operator, frozenset([value])))
            continue

        match = _EXISTS_RE.match(term)
        if match:
            negate, key = match.groups()
            requirements.append(Requirement(key, "!" if negate else "exists"))
            continue

        raise ConfigurationError(f"invalid node selector '{expression}': cannot parse '{term}'")

    return LabelSelector(tuple(requirements))


def filter_nodes(nodes: Sequence[Node], selector: LabelSelector) -> List[Node]:
    """Nodes whose labels match the selector, in input order"""
    return [node for node in nodes if selector.matches(node.labels)]


def server_id_from_provider_id(provider_id: str) -> str:
    """
    Extract the server ID from a node provider ID

    Accepted formats: phoenixnap://server-id or server-id

    Raises:
        ValidationError: If the provider ID is empty or malformed
    """
    if not provider_id:
        raise ValidationError("providerID cannot be empty string")

    parts = provider_id.split("://")
    if len(parts) == 1:
        server_id = provider_id
    elif len(parts) == 2:
        if parts[0] != PROVIDER_NAME:
            raise ValidationError(
                f"provider name from providerID should be {PROVIDER_NAME}, was {parts[0]}"
            )
        server_id = parts[1]
    else:
        raise ValidationError(
            f"unexpected providerID format: {provider_id}, "
            f"format should be: 'server-id' or '{PROVIDER_NAME}://server-id'"
        )

    if not server_id:
        raise ValidationError(f"providerID {provider_id} has no server ID")
    return server_id
