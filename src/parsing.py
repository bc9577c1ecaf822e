"""GEDCOM import and date handling utilities."""

import logging
import re
import sqlite3
from datetime import date
from pathlib import Path

from ged4py import GedcomReader

import database
from models import Gender
from relations import create_relationship

logger = logging.getLogger("kintree.parsing")

MONTHS = {
    "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4, "MAY": 5, "JUN": 6,
    "JUL": 7, "AUG": 8, "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
}

QUALIFIERS = re.compile(
    r"^(ABT\.?|ABOUT|BEF\.?|BEFORE|AFT\.?|AFTER|EST\.?|CAL\.?|CIRCA|CA\.?|AROUND):?\s*",
    re.IGNORECASE,
)


def _month(name: str) -> int | None:
    return MONTHS.get(name.upper().rstrip(".")[:3])


def _iso(year: int, month: int | None = 1, day: int | None = 1) -> str | None:
    if month is None:
        return None
    try:
        return date(year, month, day or 1).isoformat()
    except ValueError:
        return None


def parse_date_string(date_str: str | None) -> str | None:
    """
    Parse a GEDCOM date string into ISO format (YYYY-MM-DD).
    Returns None if the date cannot be parsed.

    Handles "25 NOV 1954", "NOV 1954", "1698", "ABT 1905", "1839-08-29",
    "01/27/1920", "April 17, 1850" and parenthesised variants. Missing
    months and days default to 1.
    """
    if not date_str:
        return None

    s = date_str.strip().strip("()").rstrip("?").strip()
    s = QUALIFIERS.sub("", s).strip()
    if not s:
        return None

    match = re.match(r"^(\d{4})-(\d{2})-(\d{2})$", s)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _iso(year, month or 1, day or 1)

    match = re.match(r"^(\d{1,2})\s+([A-Za-z]+)\.?\s*(\d{4})$", s)
    if match:
        return _iso(int(match.group(3)), _month(match.group(2)), int(match.group(1)))

    match = re.match(r"^([A-Za-z]+)\.?\s*(\d{1,2}),\s*(\d{4})$", s)
    if match:
        return _iso(int(match.group(3)), _month(match.group(1)), int(match.group(2)))

    match = re.match(r"^([A-Za-z]+)\.?,?\s*(\d{4})$", s)
    if match:
        return _iso(int(match.group(2)), _month(match.group(1)))

    match = re.match(r"^(\d{4})$", s)
    if match:
        return _iso(int(match.group(1)))

    match = re.match(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})$", s)
    if match:
        return _iso(int(match.group(3)), int(match.group(1)), int(match.group(2)))

    return None


def extract_name_parts(indi) -> tuple[str, str]:
    """First and last name of an individual record."""
    name_rec = indi.sub_tag("NAME")
    value = name_rec.value if name_rec is not None else None
    if not value:
        return ("Unknown", "Unknown")

    # ged4py returns NAME as tuple: (given, surname, suffix)
    if isinstance(value, tuple):
        given, surname, _suffix = value
        return (given or "Unknown", surname or "Unknown")

    parts = str(value).replace("/", " ").split()
    if not parts:
        return ("Unknown", "Unknown")
    return (" ".join(parts[:-1]) or parts[0], parts[-1] if len(parts) > 1 else "Unknown")


def extract_event_details(indi, tag: str) -> tuple[str | None, str | None]:
    """Extract date and place from an event tag (BIRT, DEAT, etc.)."""
    event = indi.sub_tag(tag)
    if event is None:
        return (None, None)

    date_rec = event.sub_tag("DATE")
    place_rec = event.sub_tag("PLAC")

    # ged4py may return DateValue objects
    date_val = str(date_rec.value) if date_rec and date_rec.value else None
    place_val = str(place_rec.value) if place_rec and place_rec.value else None
    return (date_val, place_val)


def extract_sex(indi) -> Gender | None:
    sex_rec = indi.sub_tag("SEX")
    return Gender.parse(sex_rec.value) if sex_rec else None


def _death_note(date: str | None, place: str | None) -> str | None:
    if not date and not place:
        return None
    return " ".join(p for p in ["Died", date, f"in {place}" if place else None] if p)


def import_gedcom(conn: sqlite3.Connection, filepath: Path) -> tuple[int, int]:
    """
    Import individuals and families from a GEDCOM file.

    HUSB/WIFE pairs become SPOUSE edges and each child gets a FATHER edge
    from HUSB and a MOTHER edge from WIFE; mirrors are created as usual.

    Returns:
        (members created, edges created including mirrors)
    """
    edges_before = database.count_edges(conn)
    member_for: dict[str, int] = {}

    reader = GedcomReader(str(filepath))
    for rec in reader.records0("INDI"):
        if rec.xref_id is None:
            continue
        first_name, last_name = extract_name_parts(rec)
        birth_date, birth_place = extract_event_details(rec, "BIRT")
        death_date, death_place = extract_event_details(rec, "DEAT")

        member = database.create_member(
            conn,
            first_name=first_name,
            last_name=last_name,
            dob=parse_date_string(birth_date),
            gender=extract_sex(rec),
            native_place=birth_place,
            notes=_death_note(death_date, death_place),
        )
        member_for[rec.xref_id] = member.id

    for rec in reader.records0("FAM"):
        husb = rec.sub_tag("HUSB")
        wife = rec.sub_tag("WIFE")
        husb_id = member_for.get(husb.xref_id) if husb is not None else None
        wife_id = member_for.get(wife.xref_id) if wife is not None else None

        if husb_id and wife_id:
            create_relationship(conn, husb_id, wife_id, "SPOUSE")

        for child in rec.sub_tags("CHIL"):
            child_id = member_for.get(child.xref_id)
            if child_id is None:
                logger.warning("Family %s lists unknown child %s", rec.xref_id, child.xref_id)
                continue
            if husb_id:
                create_relationship(conn, husb_id, child_id, "FATHER")
            if wife_id:
                create_relationship(conn, wife_id, child_id, "MOTHER")

    edges_created = database.count_edges(conn) - edges_before
    logger.info("Imported %d members and %d edges from %s", len(member_for), edges_created, filepath)
    return len(member_for), edges_created
