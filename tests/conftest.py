"""
Shared fixtures for the BOE monitor test suite.
"""

from datetime import date

import pytest

from boe_monitor.core.config import Settings
from boe_monitor.core.models import DocumentType, Item

SAMPLE_SUMARIO_XML = """<?xml version="1.0" encoding="utf-8"?>
<response>
  <status><code>200</code><text>ok</text></status>
  <data>
    <sumario>
      <metadatos>
        <publicacion>BOE</publicacion>
        <fecha_publicacion>20240115</fecha_publicacion>
      </metadatos>
      <diario numero="13">
        <sumario_diario>
          <identificador>BOE-S-2024-13</identificador>
        </sumario_diario>
        <seccion codigo="1" nombre="I. Disposiciones generales">
          <departamento codigo="7723" nombre="MINISTERIO DE HACIENDA">
            <epigrafe nombre="Impuestos">
              <item>
                <identificador>BOE-A-2024-601</identificador>
                <titulo>Orden HAC/20/2024,   de 10 de enero,
                  por la que se aprueba el modelo 232.</titulo>
                <url_pdf>https://www.boe.es/boe/dias/2024/01/15/pdfs/BOE-A-2024-601.pdf</url_pdf>
                <url_html>https://www.boe.es/diario_boe/txt.php?id=BOE-A-2024-601</url_html>
              </item>
            </epigrafe>
          </departamento>
        </seccion>
        <seccion codigo="2B" nombre="II. Autoridades y personal">
          <departamento codigo="4335" nombre="MINISTERIO DE SANIDAD">
            <item>
              <identificador>BOE-A-2024-602</identificador>
              <titulo>Resolución de 8 de enero de 2024, de la Subsecretaría, por la que se convoca proceso selectivo.</titulo>
              <url_pdf>https://www.boe.es/boe/dias/2024/01/15/pdfs/BOE-A-2024-602.pdf</url_pdf>
              <url_html>https://www.boe.es/diario_boe/txt.php?id=BOE-A-2024-602</url_html>
            </item>
            <item>
              <identificador></identificador>
              <titulo>Entrada sin identificador</titulo>
            </item>
          </departamento>
        </seccion>
      </diario>
    </sumario>
  </data>
</response>
"""


def make_item(index: int, title: str = None, epigraph: str = "") -> Item:
    return Item(
        identifier=f"BOE-A-2024-{index:04d}",
        title=title or f"Resolución número {index} sobre subvenciones",
        department="MINISTERIO DE HACIENDA",
        section="III. Otras disposiciones",
        epigraph=epigraph,
        publication_date=date(2024, 1, 15),
        html_url=f"https://www.boe.es/diario_boe/txt.php?id=BOE-A-2024-{index:04d}",
        pdf_url=f"https://www.boe.es/boe/dias/2024/01/15/pdfs/BOE-A-2024-{index:04d}.pdf",
        document_type=DocumentType.RESOLUTION,
    )


@pytest.fixture(name="make_item")
def make_item_fixture():
    """Factory for bulletin items"""
    return make_item


@pytest.fixture
def sample_xml():
    """Raw sumario response body"""
    return SAMPLE_SUMARIO_XML.encode("utf-8")


@pytest.fixture
def items():
    """Ten normalized items in source order"""
    return [make_item(i) for i in range(10)]


@pytest.fixture
def test_settings():
    """Explicit settings isolated from the environment"""
    return Settings(
        APP_ENV="production",
        LOW_LATENCY_MODE=False,
        ANALYSIS_SERVICE="openai",
        OPENAI_API_KEY="sk-test",
        OPENAI_MODEL="gpt-4o-mini",
        CHUNK_MAX_ITEMS=750,
        CHUNK_MAX_TOKENS=None,
        MAX_CONCURRENT_REQUESTS=2,
        WAVE_DELAY_SECONDS=1.0,
        MAX_BATCHES=None,
        RELEVANCE_FALLBACK=0.0,
        MIN_RELEVANCE=None,
        PUBSUB_TOPIC_NAME="processor-results",
        PUBSUB_DLQ_TOPIC_NAME="processor-results-dlq",
        GOOGLE_CLOUD_PROJECT="boe-monitor-test",
        _env_file=None,
    )
