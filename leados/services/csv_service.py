"""CSV service: spreadsheet import for leads and CSV export for CRM tables.

Responsible for:
- Serialising rows to comma-separated text (quote only when needed)
- Fixed export header sets for leads / contacts / opportunities
- Parsing pasted or uploaded lead sheets in one of two positional layouts:
    comma layout (prospecting sheet):
        qualification, company, sector, cnpj, phone, email, cnae, regime,
        contact, hook
    tab layout (re-import of our own export, column order of EXPORT_HEADERS):
        company, sector, cnae, regime, contact, phone, email, website,
        hook, status
- De-duplicating by case-insensitive company name

Import and export are not inverses for the comma layout; the tab layout
accepts the export order. Bad rows are skipped silently and only reported
as aggregate counts.
"""

import csv
import logging

logger = logging.getLogger(__name__)

UTF8_BOM = "\ufeff"

EXPORT_HEADERS = {
    "leads": [
        "company", "sector", "cnae", "tax_regime", "decision_maker",
        "phone", "email", "website", "prospecting_hook", "status",
    ],
    "contacts": [
        "name", "company", "role", "email", "phone", "website", "status",
        "notes",
    ],
    "opportunities": [
        "title", "company", "value", "probability", "stage",
        "expected_close_date", "notes",
    ],
}

# Placeholder for a missing primary field, per export kind
EXPORT_DEFAULTS = {
    "leads": ("company", "Empresa não informada"),
    "contacts": ("name", "Nome não informado"),
    "opportunities": ("title", "Oportunidade sem título"),
}

QUALIFICATION_STATUS = {
    "Alta Prioridade": "qualified",
    "Média Prioridade": "contacted",
    "Baixa Prioridade": "new",
}

REGIME_CODES = {
    "Lucro Real": "lucro_real",
    "Lucro Presumido": "lucro_presumido",
    "Simples Nacional": "simples_nacional",
}
DEFAULT_REGIME = "lucro_presumido"

LEAD_STATUSES = ("new", "contacted", "qualified", "lost")

COMMA_MIN_COLUMNS = 6
TAB_MIN_COLUMNS = 2


# ──────────────────────────────────────────────
# Export
# ──────────────────────────────────────────────

def _escape(value):
    if value is None:
        return ""
    text = str(value)
    if any(ch in text for ch in (",", '"', "\n", "\r")):
        return '"' + text.replace('"', '""') + '"'
    return text


def to_csv(rows, headers):
    """Join dict rows into CSV text. Missing fields become empty cells."""
    lines = [",".join(headers)]
    for row in rows:
        lines.append(",".join(_escape(row.get(h)) for h in headers))
    return "\n".join(lines)


def export_rows(kind, records):
    """Build CSV text for leads / contacts / opportunities model instances."""
    headers = EXPORT_HEADERS[kind]
    field, placeholder = EXPORT_DEFAULTS[kind]
    rows = []
    for record in records:
        row = {h: getattr(record, h, None) for h in headers}
        if not row.get(field):
            row[field] = placeholder
        rows.append(row)
    return to_csv(rows, headers)


def export_filename(kind, today):
    return f"{kind}_{today.isoformat()}.csv"


# ──────────────────────────────────────────────
# Import
# ──────────────────────────────────────────────

def parse_lines(text):
    """Split text into rows of cells, skipping the header line.

    If the first line contains a tab the whole file is tab-separated,
    otherwise comma-separated with double-quote quoting.
    Returns (delimiter, rows).
    """
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if not lines:
        return ",", []

    delimiter = "\t" if "\t" in lines[0] else ","
    body = lines[1:]

    if delimiter == "\t":
        rows = [[cell.strip() for cell in line.split("\t")] for line in body]
    else:
        rows = [[cell.strip() for cell in cells] for cells in csv.reader(body)]
    return delimiter, rows


def _clean_na(value):
    return "" if value.strip().upper() == "N/A" else value.strip()


def _map_regime(value):
    value = (value or "").strip()
    if value in REGIME_CODES:
        return REGIME_CODES[value]
    if value in REGIME_CODES.values():
        return value
    return DEFAULT_REGIME


def _cell(cells, index):
    return cells[index] if index < len(cells) else ""


def _row_from_comma_layout(cells):
    cnpj = _cell(cells, 3)
    return {
        "company": _cell(cells, 1),
        "sector": _cell(cells, 2),
        "phone": _clean_na(_cell(cells, 4)),
        "email": _clean_na(_cell(cells, 5)),
        "cnae": _cell(cells, 6),
        "tax_regime": _map_regime(_cell(cells, 7)),
        "decision_maker": _cell(cells, 8),
        "prospecting_hook": _cell(cells, 9),
        "status": QUALIFICATION_STATUS.get(_cell(cells, 0), "new"),
        "notes": f"CNPJ: {cnpj}" if cnpj else None,
    }


def _row_from_tab_layout(cells):
    status = _cell(cells, 9).lower()
    return {
        "company": _cell(cells, 0),
        "sector": _cell(cells, 1),
        "cnae": _cell(cells, 2),
        "tax_regime": _map_regime(_cell(cells, 3)),
        "decision_maker": _cell(cells, 4),
        "phone": _clean_na(_cell(cells, 5)),
        "email": _clean_na(_cell(cells, 6)),
        "website": _cell(cells, 7),
        "prospecting_hook": _cell(cells, 8),
        "status": status if status in LEAD_STATUSES else "new",
    }


def import_leads(text, existing_companies=()):
    """Parse a lead sheet into lead dicts ready for insertion.

    Args:
        text:               Raw CSV / TSV text (first line is a header).
        existing_companies: Company names already stored for this user.

    Returns a dict: leads (list of dicts), imported, skipped_duplicates,
    skipped_invalid.
    """
    delimiter, rows = parse_lines(text)
    seen = {c.strip().lower() for c in existing_companies if c}

    if delimiter == "\t":
        layout, min_columns, build = "tab", TAB_MIN_COLUMNS, _row_from_tab_layout
    else:
        layout, min_columns, build = "comma", COMMA_MIN_COLUMNS, _row_from_comma_layout

    leads = []
    skipped_duplicates = 0
    skipped_invalid = 0

    for cells in rows:
        if len(cells) < min_columns:
            skipped_invalid += 1
            continue
        lead = build(cells)
        key = lead["company"].strip().lower()
        if not key:
            skipped_invalid += 1
            continue
        if key in seen:
            skipped_duplicates += 1
            continue
        seen.add(key)
        leads.append(lead)

    logger.info(
        f"Parsed lead sheet ({layout} layout): "
        f"{len(leads)} new, {skipped_duplicates} duplicate, {skipped_invalid} invalid"
    )
    return {
        "leads": leads,
        "imported": len(leads),
        "skipped_duplicates": skipped_duplicates,
        "skipped_invalid": skipped_invalid,
    }
