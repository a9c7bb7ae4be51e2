"""
XMLTV Parser Service

Forward-only, tolerant parsing of XMLTV text into channel and program records.
"""
import asyncio
import logging
from io import BytesIO

from lxml import etree # type: ignore

from epghub.exceptions import FeedParseError
from epghub.services.fetch_types import (
    EpgChannel,
    EpgProgram,
    FeedFormat,
    UNTITLED_PROGRAM,
)
from epghub.utils.timezone import parse_xmltv_time

logger = logging.getLogger(__name__)

_LEADING_JUNK = "\ufeff \t\r\n"


def normalize_xml_input(xml_text: str | None) -> str:
    """Drop BOM/whitespace and anything before the first '<'."""
    if not xml_text:
        return ""
    text = xml_text.lstrip(_LEADING_JUNK)
    idx = text.find("<")
    if idx < 0:
        return ""
    return text[idx:]


def classify_feed_text(xml_text: str | None) -> FeedFormat:
    """
    Sniff a downloaded body before parsing it.

    Returns:
        FeedFormat.EMPTY for blank bodies, FeedFormat.OK when the body opens
        with a ``<tv`` root (directly or after an XML declaration),
        FeedFormat.NOT_GUIDE_FORMAT otherwise
    """
    if not xml_text or not xml_text.strip():
        return FeedFormat.EMPTY

    text = xml_text.lstrip(_LEADING_JUNK)
    if not text.startswith("<"):
        return FeedFormat.NOT_GUIDE_FORMAT

    lowered = text.lower()
    if lowered.startswith("<tv"):
        return FeedFormat.OK
    if lowered.startswith("<?xml") and "<tv" in lowered:
        return FeedFormat.OK
    return FeedFormat.NOT_GUIDE_FORMAT


def parse_xmltv_text(xml_text: str | None) -> tuple[list[EpgProgram], list[EpgChannel]]:
    """
    Parse XMLTV text and return programs and channels

    Unknown elements are ignored. Records missing a required attribute, with an
    unparseable time, or with stop <= start are skipped.

    Args:
        xml_text: Decoded XMLTV document

    Returns:
        Tuple of (programs, channels); empty lists for empty input

    Raises:
        FeedParseError: If the document is not well-formed XML
    """
    text = normalize_xml_input(xml_text)
    if not text:
        return [], []

    programs: list[EpgProgram] = []
    channels: list[EpgChannel] = []
    skipped = 0

    context = etree.iterparse(
        BytesIO(text.encode("utf-8")),
        events=("end",),
        encoding="utf-8",
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        remove_comments=True,
        remove_pis=True,
        huge_tree=True,
    )

    try:
        for _, element in context:
            tag = _local_name(element)
            if tag == "channel":
                channel = _parse_channel(element)
                if channel is not None:
                    channels.append(channel)
                _release(element)
            elif tag == "programme":
                program = _parse_programme(element)
                if program is not None:
                    programs.append(program)
                else:
                    skipped += 1
                _release(element)
    except etree.XMLSyntaxError as exc:
        logger.error("  XML parsing error: %s", exc)
        raise FeedParseError(f"Malformed XMLTV document: {exc}") from exc

    if skipped:
        logger.debug("Skipped %s invalid programme record(s)", skipped)
    logger.info(f"XMLTV parsing complete: {len(channels)} channels, {len(programs)} programs")

    return programs, channels


async def parse_xmltv_async(
    xml_text: str,
    *,
    parse_timeout_seconds: int | None = None
) -> tuple[list[EpgProgram], list[EpgChannel]]:
    """
    Parse XMLTV text in the default thread pool with optional timeout.

    Keyword Args:
        parse_timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)

    Raises:
        FeedParseError: If the document is malformed or parsing times out
    """
    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None

    loop = asyncio.get_running_loop()
    parse_task = loop.run_in_executor(None, parse_xmltv_text, xml_text)
    try:
        if effective_timeout:
            return await asyncio.wait_for(parse_task, timeout=effective_timeout)
        return await parse_task
    except asyncio.TimeoutError as exc:
        logger.error("XML parsing timed out after %ss", effective_timeout)
        raise FeedParseError("XML parsing timed out - document may be too large or malformed") from exc


def _local_name(element: etree._Element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    if "}" in tag:
        tag = tag.rsplit("}", 1)[1]
    return tag.lower()


def _release(element: etree._Element) -> None:
    """Free memory held by consumed elements."""
    element.clear()
    parent = element.getparent()
    if parent is not None:
        while element.getprevious() is not None:
            del parent[0]


def _child_texts(element: etree._Element, tag: str) -> list[str]:
    texts = []
    for child in element:
        if _local_name(child) != tag:
            continue
        value = "".join(child.itertext()).strip()
        if value:
            texts.append(value)
    return texts


def _parse_channel(element: etree._Element) -> EpgChannel | None:
    """Extract a channel and all of its display names"""
    channel_id = (element.get("id") or "").strip()
    if not channel_id:
        logger.debug("Skipping channel with missing ID attribute")
        return None

    names: list[str] = []
    seen: set[str] = set()
    for name in _child_texts(element, "display-name"):
        folded = name.casefold()
        if folded not in seen:
            seen.add(folded)
            names.append(name)

    return EpgChannel(channel_id=channel_id, display_names=tuple(names))


def _parse_programme(element: etree._Element) -> EpgProgram | None:
    """Parse single programme element"""
    channel_id = (element.get("channel") or "").strip()
    start_str = element.get("start")
    stop_str = element.get("stop")

    if not channel_id or not start_str or not start_str.strip() or not stop_str or not stop_str.strip():
        return None

    start_time = parse_xmltv_time(start_str)
    stop_time = parse_xmltv_time(stop_str)
    if start_time is None or stop_time is None or stop_time <= start_time:
        return None

    titles = _child_texts(element, "title")
    descriptions = _child_texts(element, "desc")

    return EpgProgram(
        channel_id=channel_id,
        title=titles[0] if titles else UNTITLED_PROGRAM,
        description=descriptions[0] if descriptions else None,
        start_time=start_time,
        stop_time=stop_time,
    )
