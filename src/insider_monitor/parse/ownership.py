"""Parser for ownership form XML (SEC forms 3, 4 and 5).

Parsing happens in two steps:

1. `element_to_tree` turns the lxml element tree into plain dicts, lists and
   strings. Attributes become keys, element text is kept under ``text`` when
   the element also carries attributes or children, repeated children become
   lists.
2. `coerce_tree` applies `FIELD_SCHEMA`, a static table keyed by dotted path
   suffix, forcing lists, dates, booleans and floats. `replace_empty_strings`
   then turns every empty leaf into ``None``.

Step 2 is a pure transform over the generic tree and does not depend on lxml.
"""

from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Any

from lxml import etree

from insider_monitor.exceptions import FormParseError

ROOT_TAG = "ownershipDocument"
REQUIRED_NODES = ("issuer", "reportingOwner")
TEXT_KEY = "text"

XML_DECLARATION_RE = re.compile(r"^\s*<\?xml[^>]*\?>")

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True)


class FieldKind(Enum):
    DEFAULT = "default"
    ARRAY = "array"
    DATE = "date"
    BOOLEAN = "boolean"
    FLOAT = "float"


FIELD_SCHEMA: dict[str, FieldKind] = {
    # always lists, even for a single occurrence
    "reportingOwner": FieldKind.ARRAY,
    "ownerSignature": FieldKind.ARRAY,
    "nonDerivativeTransaction": FieldKind.ARRAY,
    "nonDerivativeHolding": FieldKind.ARRAY,
    "derivativeTransaction": FieldKind.ARRAY,
    "derivativeHolding": FieldKind.ARRAY,
    "footnote": FieldKind.ARRAY,
    "footnoteId": FieldKind.ARRAY,
    # calendar dates
    "periodOfReport": FieldKind.DATE,
    "signatureDate": FieldKind.DATE,
    "transactionDate.value": FieldKind.DATE,
    "deemedExecutionDate.value": FieldKind.DATE,
    "exerciseDate.value": FieldKind.DATE,
    "expirationDate.value": FieldKind.DATE,
    # flags
    "noSecuritiesOwned": FieldKind.BOOLEAN,
    "notSubjectToSection16": FieldKind.BOOLEAN,
    "form3HoldingsReported": FieldKind.BOOLEAN,
    "form4TransactionsReported": FieldKind.BOOLEAN,
    "aff10b5One": FieldKind.BOOLEAN,
    "rptOwnerGoodAddress": FieldKind.BOOLEAN,
    "isDirector": FieldKind.BOOLEAN,
    "isOfficer": FieldKind.BOOLEAN,
    "isTenPercentOwner": FieldKind.BOOLEAN,
    "isOther": FieldKind.BOOLEAN,
    "equitySwapInvolved": FieldKind.BOOLEAN,
    # numbers
    "transactionShares.value": FieldKind.FLOAT,
    "transactionTotalValue.value": FieldKind.FLOAT,
    "sharesOwnedFollowingTransaction.value": FieldKind.FLOAT,
    "valueOwnedFollowingTransaction.value": FieldKind.FLOAT,
    "conversionOrExercisePrice.value": FieldKind.FLOAT,
    "underlyingSecurityShares.value": FieldKind.FLOAT,
    "underlyingSecurityValue.value": FieldKind.FLOAT,
    "transactionPricePerShare.value": FieldKind.FLOAT,
}


def field_kind(path: str, schema: dict[str, FieldKind] = FIELD_SCHEMA) -> FieldKind:
    """Return the kind declared for a dotted path, matching by suffix."""
    for suffix, kind in schema.items():
        if path == suffix or path.endswith("." + suffix):
            return kind
    return FieldKind.DEFAULT


def _local(name: Any) -> str:
    return etree.QName(name).localname


def element_to_tree(el: etree._Element) -> Any:
    """Convert an element into nested dicts, lists and strings."""
    children = [c for c in el if isinstance(c.tag, str)]
    attrs = {_local(k): v for k, v in el.attrib.items()}
    text = (el.text or "").strip()
    if not children and not attrs:
        return text

    node: dict[str, Any] = dict(attrs)
    repeated: set[str] = set()
    for child in children:
        key = _local(child.tag)
        value = element_to_tree(child)
        if key in repeated:
            node[key].append(value)
        elif key in node:
            node[key] = [node[key], value]
            repeated.add(key)
        else:
            node[key] = value
    if text:
        node[TEXT_KEY] = text
    return node


def _coerce_leaf(value: str, path: str, kind: FieldKind) -> Any:
    if kind is FieldKind.DATE:
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise FormParseError(f"{path}: invalid date {value!r}") from exc
    if kind is FieldKind.BOOLEAN:
        return value.strip().lower() in ("1", "true")
    if kind is FieldKind.FLOAT:
        try:
            return float(value.strip())
        except ValueError as exc:
            raise FormParseError(f"{path}: invalid number {value!r}") from exc
    return value


def _coerce_node(value: Any, path: str, kind: FieldKind, schema: dict[str, FieldKind]) -> Any:
    if isinstance(value, dict):
        return {k: coerce_tree(v, f"{path}.{k}" if path else k, schema) for k, v in value.items()}
    if isinstance(value, str) and value.strip():
        return _coerce_leaf(value, path, kind)
    return value


def coerce_tree(value: Any, path: str = "", schema: dict[str, FieldKind] = FIELD_SCHEMA) -> Any:
    """Apply the schema table to a generic tree rooted at `path`.

    Raises:
        FormParseError: if a date or float leaf cannot be converted.
    """
    kind = field_kind(path, schema) if path else FieldKind.DEFAULT
    if kind is FieldKind.ARRAY and not isinstance(value, list):
        value = [value]
    if isinstance(value, list):
        return [_coerce_node(item, path, kind, schema) for item in value]
    return _coerce_node(value, path, kind, schema)


def replace_empty_strings(value: Any) -> Any:
    """Recursively replace empty-string leaves with ``None``."""
    if isinstance(value, dict):
        return {k: None if v == "" else replace_empty_strings(v) for k, v in value.items()}
    if isinstance(value, list):
        return [None if v == "" else replace_empty_strings(v) for v in value]
    return None if value == "" else value


def parse_ownership_form(xml: str) -> dict[str, Any]:
    """Parse ownership form XML into a normalized dict.

    Args:
        xml: Content of the primary document (the `<XML>` payload).

    Returns:
        The normalized content of the `ownershipDocument` element.

    Raises:
        FormParseError: for malformed XML, an unexpected root element,
            missing issuer/reporting owner nodes or uncoercible values.
    """
    try:
        root = etree.fromstring(XML_DECLARATION_RE.sub("", xml, count=1).strip(), parser=_PARSER)
    except (etree.XMLSyntaxError, ValueError) as exc:
        raise FormParseError(f"Malformed ownership XML: {exc}") from exc

    if _local(root.tag) != ROOT_TAG:
        raise FormParseError(f"Unexpected root element '{_local(root.tag)}'")

    tree = element_to_tree(root)
    if not isinstance(tree, dict):
        raise FormParseError("Empty ownershipDocument")
    missing = [name for name in REQUIRED_NODES if name not in tree]
    if missing:
        raise FormParseError(f"ownershipDocument lacks {', '.join(missing)}")

    return replace_empty_strings(coerce_tree(tree, ROOT_TAG))
