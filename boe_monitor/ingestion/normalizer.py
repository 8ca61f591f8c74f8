"""
Normalization of the BOE sumario XML into ordered bulletin items.
"""

import re
from datetime import date, datetime
from typing import Iterator, List, Optional
from xml.etree import ElementTree as ET

import structlog
from bs4 import BeautifulSoup

from ..core.config import settings
from ..core.errors import MalformedSourceError
from ..core.models import BulletinContent, BulletinInfo, DocumentType, Item

logger = structlog.get_logger(__name__)

# Title prefixes, checked in order
DOCUMENT_TYPE_PREFIXES = [
    ("Resolución", DocumentType.RESOLUTION),
    ("Orden", DocumentType.ORDER),
    ("Real Decreto", DocumentType.ROYAL_DECREE),
    ("Ley", DocumentType.LAW),
    ("Anuncio", DocumentType.ANNOUNCEMENT),
]


def clean_text(text: Optional[str]) -> str:
    """Strip markup and collapse whitespace runs to single spaces."""
    if not text:
        return ""

    # Remove HTML tags if present
    if "<" in text and ">" in text:
        text = BeautifulSoup(text, "html.parser").get_text()

    return re.sub(r"\s+", " ", text).strip()


def determine_document_type(title: str) -> DocumentType:
    for prefix, document_type in DOCUMENT_TYPE_PREFIXES:
        if title.startswith(prefix):
            return document_type
    return DocumentType.OTHER


def _parse_compact_date(value: Optional[str]) -> Optional[date]:
    value = clean_text(value)
    if not value:
        return None
    for fmt in ("%Y%m%d", "%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    logger.warning("Unrecognized publication date", value=value)
    return None


def _child_text(element: ET.Element, tag: str) -> str:
    child = element.find(tag)
    if child is None:
        return ""
    return clean_text("".join(child.itertext()))


class BOENormalizer:
    """Parses the raw sumario document into a canonical item sequence."""

    def __init__(self, source_url: Optional[str] = None):
        self.source_url = source_url or settings.boe_source_url

    def normalize(self, raw: bytes) -> BulletinContent:
        """
        Parse raw sumario XML.

        Args:
            raw: Response body of the sumario endpoint

        Returns:
            BulletinContent with issue info and items in source order

        Raises:
            MalformedSourceError: if the XML is unparsable or lacks the
                data/sumario/diario containers
        """
        try:
            root = ET.fromstring(raw)
        except ET.ParseError as e:
            raise MalformedSourceError(
                "BOE summary is not valid XML", details={"error": str(e)}
            ) from e

        sumario = root.find("./data/sumario")
        if sumario is None:
            raise MalformedSourceError(
                "BOE summary is missing the data/sumario container",
                details={"root_tag": root.tag},
            )

        diarios = sumario.findall("diario")
        if not diarios:
            raise MalformedSourceError("BOE summary is missing the diario container")

        publication_date = None
        metadatos = sumario.find("metadatos")
        if metadatos is not None:
            publication_date = _parse_compact_date(_child_text(metadatos, "fecha_publicacion"))

        info = BulletinInfo(
            issue_number=clean_text(diarios[0].get("numero")),
            publication_date=publication_date,
            source_url=self.source_url,
        )

        items: List[Item] = []
        skipped = 0
        for diario in diarios:
            for element, section, department, epigraph in self._iter_item_elements(diario):
                item = self._build_item(element, section, department, epigraph, publication_date)
                if item is None:
                    skipped += 1
                    continue
                items.append(item)

        if skipped:
            logger.warning("Skipped incomplete BOE items", skipped=skipped)

        logger.info("Normalized BOE summary", items=len(items),
                    issue_number=info.issue_number,
                    publication_date=publication_date.isoformat() if publication_date else None)

        return BulletinContent(info=info, items=items)

    def _iter_item_elements(self, diario: ET.Element) -> Iterator[tuple]:
        for seccion in diario.findall("seccion"):
            section = clean_text(seccion.get("nombre"))
            for departamento in seccion.findall("departamento"):
                department = clean_text(departamento.get("nombre"))
                # Items can hang from an epigraph or directly from the department
                for child in departamento:
                    if child.tag == "epigrafe":
                        epigraph = clean_text(child.get("nombre"))
                        for item in child.findall("item"):
                            yield item, section, department, epigraph
                    elif child.tag == "item":
                        yield child, section, department, ""

    def _build_item(
        self,
        element: ET.Element,
        section: str,
        department: str,
        epigraph: str,
        publication_date: Optional[date],
    ) -> Optional[Item]:
        identifier = _child_text(element, "identificador")
        title = _child_text(element, "titulo")
        if not identifier or not title:
            logger.debug("BOE item without identifier or title", identifier=identifier)
            return None

        return Item(
            identifier=identifier,
            title=title,
            department=department,
            section=section,
            epigraph=epigraph,
            publication_date=publication_date,
            html_url=_child_text(element, "url_html"),
            pdf_url=_child_text(element, "url_pdf"),
            document_type=determine_document_type(title),
        )
