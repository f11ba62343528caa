"""
Parsing of Kodi-style NFO companion files (tvshow.nfo, season.nfo, <episode>.nfo).
"""
import logging
import xml.etree.ElementTree as ET
from typing import Optional

logger = logging.getLogger(__name__)

SERIES_ROOT_TAG = "tvshow"
SEASON_ROOT_TAG = "season"
EPISODE_ROOT_TAG = "episodedetails"


class NfoError(Exception):
    """An NFO file could not be read or is not well-formed XML"""


def _local_tag(tag) -> str:
    return tag.split('}')[-1] if isinstance(tag, str) else ""

def element_to_dict(elem: ET.Element):
    """
    Convert an element into plain data.

    Leaf elements become their stripped text (or None), elements with children
    become dicts keyed by child tag, repeated children become lists, and
    attributes are kept under "@attributes".
    """
    children = [child for child in elem if isinstance(child.tag, str)]
    if not children and not elem.attrib:
        text = (elem.text or "").strip()
        return text or None

    result = {}
    if elem.attrib:
        result["@attributes"] = dict(elem.attrib)
    if not children:
        text = (elem.text or "").strip()
        if text:
            result["#text"] = text
        return result

    for child in children:
        key = _local_tag(child.tag)
        value = element_to_dict(child)
        if key in result:
            if not isinstance(result[key], list):
                result[key] = [result[key]]
            result[key].append(value)
        else:
            result[key] = value
    return result

def parse_nfo(path, root_tag: str) -> Optional[dict]:
    """
    Parse an NFO file and return the record under root_tag.

    Returns None when the document has no such element. Raises NfoError when
    the file cannot be read or parsed; callers decide whether that matters.
    """
    try:
        with open(path, encoding="utf-8") as f:
            content = f.read()
        root = ET.fromstring(content)
    except (OSError, UnicodeDecodeError, ET.ParseError) as e:
        raise NfoError(f"Could not parse NFO {path}: {e}") from e

    if _local_tag(root.tag) == root_tag:
        node = root
    else:
        node = next((el for el in root.iter() if _local_tag(el.tag) == root_tag), None)
    if node is None:
        logger.debug(f"No <{root_tag}> element in {path}")
        return None

    details = element_to_dict(node)
    if not isinstance(details, dict):
        # <episodedetails/> or text-only root
        details = {"#text": details} if details else {}
    return details

def parse_series_details(path) -> Optional[dict]:
    return parse_nfo(path, SERIES_ROOT_TAG)

def parse_season_details(path) -> Optional[dict]:
    return parse_nfo(path, SEASON_ROOT_TAG)

def parse_episode_details(path) -> Optional[dict]:
    return parse_nfo(path, EPISODE_ROOT_TAG)
