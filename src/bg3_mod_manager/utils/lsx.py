"""Helpers for Larian's LSX XML documents (meta.lsx, modsettings.lsx).

LSX stores values as ``<attribute id="..." type="..." value="..."/>``
children of ``<node id="...">`` elements, with nested nodes under a
``<children>`` element.
"""

from __future__ import annotations

from xml.etree.ElementTree import Element

import defusedxml.ElementTree as DefusedET


def parse_lsx(data: bytes) -> Element:
    """Parse LSX bytes, tolerating UTF-8 and UTF-16 byte-order marks.

    Raises:
        ValueError: If the XML cannot be parsed.
    """
    try:
        text = data
        if text.startswith(b"\xff\xfe") or text.startswith(b"\xfe\xff"):
            text = data.decode("utf-16").encode("utf-8")
        elif text.startswith(b"\xef\xbb\xbf"):
            text = data[3:]
        return DefusedET.fromstring(text)
    except Exception as exc:
        raise ValueError(f"Failed to parse LSX document: {exc}") from exc


def find_node(root: Element, node_id: str) -> Element | None:
    """First ``<node id=node_id>`` anywhere below *root* (or *root* itself)."""
    if root.tag == "node" and root.get("id") == node_id:
        return root
    return root.find(f".//node[@id='{node_id}']")


def child_nodes(node: Element, node_id: str) -> list[Element]:
    """Direct ``children/node`` elements of *node* with the given id."""
    return node.findall(f"./children/node[@id='{node_id}']")


def attributes(node: Element) -> dict[str, str]:
    """The node's own attribute values (nested nodes are not included)."""
    return {
        attr.get("id", ""): attr.get("value", "")
        for attr in node.findall("./attribute")
        if attr.get("id")
    }
