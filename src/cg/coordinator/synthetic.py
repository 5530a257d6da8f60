"""Placeholder leads for demo runs and lead-source fallbacks."""

from __future__ import annotations

from cg.types import Candidate, FilterSet

DEFAULT_TITLES = ("CEO", "Founder", "VP of Sales", "Head of Growth", "COO")

_PEOPLE = (
    ("James", "Smith", "TechFlow"),
    ("Sarah", "Johnson", "ScaleUp Inc"),
    ("Michael", "Williams", "GrowthLabs"),
    ("Emily", "Brown", "CloudBase"),
    ("David", "Jones", "DataSync"),
)


def synthetic_leads(filters: FilterSet | None = None) -> list[Candidate]:
    """Build five placeholder candidates shaped by the filters.

    Titles cycle through the filter titles and the location is the first
    filter location. These carry no contact address.
    """
    titles = (filters.titles if filters and filters.titles else None) or DEFAULT_TITLES
    locations = filters.location_texts() if filters else []
    location = locations[0] if locations else "United States"

    leads = []
    for index, (first, last, company) in enumerate(_PEOPLE):
        title = titles[index % len(titles)]
        leads.append(
            Candidate(
                first_name=first,
                last_name=last,
                full_name=f"{first} {last}",
                title=title,
                company=company,
                location=location,
                about=f"Experienced {title} with a passion for growth and innovation.",
                profile_url=f"https://linkedin.com/in/{first.lower()}{last.lower()}",
                profile_id=f"synthetic-{index + 1}",
            )
        )
    return leads
