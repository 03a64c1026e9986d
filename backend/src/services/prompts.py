"""Prompt builders for document generation and the two chat assistants."""

import json
from dataclasses import dataclass
from datetime import date

DOCUMENT_TITLE = "Drug Shortage Clinical Response Template"

REQUIRED_SECTIONS = (
    "1. Current Product Shortage Status",
    "2. Major Indications",
    "3. Therapeutic Alternatives by Indication",
    "4. Subpopulations of Concern",
    "5. Other Considerations",
)

_DOCUMENT_SYSTEM_PROMPT = """\
You are a clinical decision support LLM that is built to help clinicians and decision makers \
make better decisions about the impact of a drug shortage. Your task is to generate a drug \
shortage document for "{drug_name}". This document will be used to summarize the potential \
impact and guide the response.

You MUST generate the document using markdown and follow all instructions precisely.

**CRITICAL INSTRUCTIONS:**
- NEVER leave any section with "N/A", "TBD", "To be determined", or blank values. If you don't \
have specific information, provide general clinical guidance based on the drug class and common \
clinical practice.
- Take into account the formulation of the shortage. This can be a difference for many drugs.
- Always fill in all sections with meaningful clinical content that can be acted upon by \
hospital staff. Be technical and sufficiently detailed.
- The document can be no longer than 5 pages.
- EVERY section must contain substantive clinical information. Do not create empty sections.
{drug_data_block}
**DOCUMENT STRUCTURE REQUIREMENTS:**
1. Start with the main title: "{title}"
2. Add the following lines, populating the drug name and date:
   - **Drug Name:** {drug_name}
   - **Date:** {today}
   - **For Use By:** Clinicians, Pharmacists, Formulary Committees, Health System Planners

3. Create a level 3 markdown heading titled "{s1}". Under it, create a bulleted list for:
   - **Molecule:** the generic/chemical name
   - **Formulations in Shortage:** the affected formulations
   - **Available Market Alternatives:** available alternatives

4. Create a level 3 markdown heading titled "{s2}". Under it, create bulleted lists for:
   - **On-label:** approved indications, using the full language from the indication.
   - **Common Off-label:** known off-label uses the pharmacist should know about.

5. Create a level 3 markdown heading titled "{s3}". Under it, create bulleted lists sorted by \
"Indication", with "Alternatives" and "Notes" for each indication. If no equivalent drug is \
available offer the next-line therapy and note limitations. Highlight the indications that most \
need this drug if it had to be prioritized. Avoid suggesting drugs that are also in shortage.

6. Create a level 3 markdown heading titled "{s4}". Under it, create bulleted lists sorted by \
"Population" and their "Considerations" (e.g., Pediatrics, Renal impairment, Pregnant/lactating, \
Elderly). Recommendations must be actionable and specific.

7. Create a level 3 markdown heading titled "{s5}". Under it, create bulleted lists for:
   - **Infection control implications**
   - **Communication needs**
   - **Reconstitution practices**
   - **Saving of doses**

Generate the complete document now:"""

_CORRECTIVE_PROMPT = """\
Your previous answer for "{drug_name}" was incomplete: {problems}.
Write the ENTIRE document again from the beginning. It must start with the title \
"{title}", contain every numbered level 3 section from "{first}" through "{last}", \
and end with a complete sentence. Do not stop early and do not add commentary."""

_EDIT_PROMPT = (
    "Please edit the document with the following instructions: {instructions}.\n"
    "Return ONLY the complete updated document content."
)


@dataclass(frozen=True)
class DocumentPrompt:
    system: str
    user: str


def _dump(data: object) -> str:
    return json.dumps(data, default=str, ensure_ascii=False)


def build_document_prompt(
    drug_name: str,
    drug_data: dict[str, object] | None = None,
    today: date | None = None,
) -> DocumentPrompt:
    """Return the system/user prompt pair for a full clinical response document."""
    drug_data_block = ""
    if drug_data:
        drug_data_block = f"- Use this shortage report data where relevant: {_dump(drug_data)}\n"
    system = _DOCUMENT_SYSTEM_PROMPT.format(
        drug_name=drug_name,
        drug_data_block=drug_data_block,
        title=DOCUMENT_TITLE,
        today=(today or date.today()).isoformat(),
        s1=REQUIRED_SECTIONS[0],
        s2=REQUIRED_SECTIONS[1],
        s3=REQUIRED_SECTIONS[2],
        s4=REQUIRED_SECTIONS[3],
        s5=REQUIRED_SECTIONS[4],
    )
    user = (
        f"Generate a comprehensive drug shortage document for: {drug_name}\n\n"
        "Provide detailed analysis including clinical impact, therapeutic alternatives, "
        "and recommendations. Format the response in markdown."
    )
    return DocumentPrompt(system=system, user=user)


def build_corrective_prompt(drug_name: str, problems: list[str]) -> str:
    return _CORRECTIVE_PROMPT.format(
        drug_name=drug_name,
        problems="; ".join(problems) or "the document was cut off",
        title=DOCUMENT_TITLE,
        first=REQUIRED_SECTIONS[0],
        last=REQUIRED_SECTIONS[-1],
    )


def build_edit_prompt(instructions: str) -> str:
    return _EDIT_PROMPT.format(instructions=instructions.strip().rstrip("."))


def shortage_instructions(
    drug_data: dict[str, object] | None,
    all_shortage_data: list[dict[str, object]] | None = None,
) -> str:
    """Instructions for the assistant that answers questions about a shortage report."""
    name = (drug_data or {}).get("drug_name") or "the requested drug"
    parts = [f"You are analyzing drug shortage data for {name}."]
    if drug_data:
        parts.append(f"This is the specific report data: {_dump(drug_data)}.")
    if all_shortage_data:
        parts.append(f"Here is comprehensive data about all related shortages: {_dump(all_shortage_data)}.")
    parts.append(
        "Provide detailed insights about the shortage situation, including therapeutic "
        "alternatives, conservation strategies, patient prioritization, and other relevant information."
    )
    return " ".join(parts)


def document_instructions(drug_data: dict[str, object] | None, document_content: str | None) -> str:
    """Instructions for the assistant that co-authors the session document."""
    parts = ["You are helping create a concise document about a drug shortage."]
    if drug_data:
        parts.append(f"This is the specific drug data: {_dump(drug_data)}.")
    if document_content:
        parts.append(f'The current document is: "{document_content}".')
    else:
        parts.append("Please generate an initial draft for a hospital staff communication document.")
    parts.append(
        "Focus on key information that hospital staff need to know, such as shortage duration, "
        "alternatives, and conservation strategies."
    )
    return " ".join(parts)
