"""Routes for browsing the document store outside production."""
from __future__ import annotations

import html
import json
from typing import Any, Dict, Iterable, List, Mapping

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse

from tourbook.config import Settings, get_settings
from tourbook.dependencies.services import get_document_store
from tourbook.services.store import DocumentStore

router = APIRouter()


def _stringify(value: Any) -> str:
    """Return a JSON-friendly string representation for table cells."""
    if value is None:
        return ""
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    return json.dumps(value, default=str)


def _build_table(title: str, rows: Iterable[Mapping[str, Any]]) -> str:
    row_list: List[Dict[str, Any]] = [dict(row) for row in rows]
    section_parts = [f"<section><h2>{html.escape(title)}</h2>"]
    if not row_list:
        section_parts.append("<p>No records found.</p></section>")
        return "".join(section_parts)

    columns: List[str] = []
    for row in row_list:
        for key in row.keys():
            if key not in columns:
                columns.append(key)

    header = "".join(f"<th>{html.escape(column)}</th>" for column in columns)
    body_rows = [
        "<tr>"
        + "".join(f"<td>{html.escape(_stringify(row.get(column)))}</td>" for column in columns)
        + "</tr>"
        for row in row_list
    ]
    section_parts.append(
        f"<table><thead><tr>{header}</tr></thead><tbody>{''.join(body_rows)}</tbody></table>"
    )
    section_parts.append("</section>")
    return "".join(section_parts)


def _ensure_non_production(settings: Settings) -> None:
    if settings.is_production:
        raise HTTPException(status_code=404, detail="Not Found")


@router.get("/store", response_class=HTMLResponse)
async def view_store(
    settings: Settings = Depends(get_settings),
    store: DocumentStore = Depends(get_document_store),
) -> HTMLResponse:
    """Render every top-level collection as an HTML table."""
    _ensure_non_production(settings)
    sections = "".join(
        _build_table(name.title(), store.dump(name)) for name in store.collection_names()
    )
    html_content = f"""
    <html>
        <head>
            <title>Store Overview</title>
            <style>
                body {{ font-family: Arial, sans-serif; margin: 2rem; }}
                h1 {{ text-align: center; }}
                section {{ margin-bottom: 2rem; }}
                table {{ border-collapse: collapse; width: 100%; }}
                th, td {{ border: 1px solid #ccc; padding: 0.5rem; text-align: left; }}
                th {{ background-color: #f0f0f0; }}
                tbody tr:nth-child(even) {{ background-color: #fafafa; }}
            </style>
        </head>
        <body>
            <h1>Store Overview</h1>
            {sections or "<p>The store is empty.</p>"}
        </body>
    </html>
    """
    return HTMLResponse(content=html_content)


@router.delete("/store/{collection}/{record_id}")
async def delete_store_record(
    collection: str,
    record_id: str,
    settings: Settings = Depends(get_settings),
    store: DocumentStore = Depends(get_document_store),
) -> Dict[str, str]:
    """Remove one document from a top-level collection."""
    _ensure_non_production(settings)
    normalized = collection.strip().lower()
    if normalized not in store.collection_names():
        raise HTTPException(status_code=404, detail="Unknown collection")
    if not await store.delete(normalized, record_id):
        raise HTTPException(status_code=404, detail="Record not found")
    return {"status": "deleted", "collection": normalized, "record_id": record_id}
