"""Reads EDMX XML into a loosely shaped dict tree.

Attributes land under "$", text under "_", and child elements under their
prefixed tag name. A child that occurs once is a dict, a repeated child is a
list of dicts, so consumers must normalize shapes before use.
"""

from lxml import etree

from .base import MalformedSchemaError

ATTRIBUTES_KEY = "$"
TEXT_KEY = "_"


def parse_xml(text: str) -> dict:
    """Parse an XML document into `{root_tag: node}`."""
    if not text or not text.strip():
        raise MalformedSchemaError("Metadata document is empty")

    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)
    try:
        root = etree.fromstring(text.strip().encode("utf-8"), parser=parser)
    except etree.XMLSyntaxError as e:
        raise MalformedSchemaError(f"Metadata is not valid XML: {e}") from e

    return {_tag_name(root): _element_to_node(root)}


def _element_to_node(element) -> dict:
    node: dict = {}
    if element.attrib:
        node[ATTRIBUTES_KEY] = {etree.QName(key).localname: value for key, value in element.attrib.items()}

    text = (element.text or "").strip()
    if text:
        node[TEXT_KEY] = text

    for child in element:
        if not isinstance(child.tag, str):
            continue  # comments, processing instructions
        tag = _tag_name(child)
        value = _element_to_node(child)
        if tag not in node:
            node[tag] = value
        elif isinstance(node[tag], list):
            node[tag].append(value)
        else:
            node[tag] = [node[tag], value]
    return node


def _tag_name(element) -> str:
    local = etree.QName(element).localname
    if element.prefix:
        return f"{element.prefix}:{local}"
    return local
