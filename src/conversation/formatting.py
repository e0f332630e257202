from typing import List, Optional, Sequence

from inbox_ai.models import BackfillCandidate, Candidate, CaptureFields, Category, Item

MAX_ITEMS_PER_CATEGORY = 10

CATEGORY_HEADINGS = {
    Category.TASKS: "Tasks",
    Category.WORK: "Work",
    Category.PEOPLE: "People",
    Category.ADMIN: "Admin",
}


def priority_tag(priority: Optional[int]) -> str:
    return f" [P{priority}]" if priority else ""


def item_line(item: Item) -> str:
    due = f" (due: {item.due_date.isoformat()})" if item.due_date else ""
    return f"• {item.display_title}{priority_tag(item.priority)}{due}"


def candidate_line(candidate: Candidate, number: Optional[int] = None) -> str:
    prefix = f"{number}. " if number is not None else ""
    due = f", due {candidate.due_date.isoformat()}" if candidate.due_date else ""
    return f"{prefix}*{candidate.title}* ({candidate.database.value}{due}){priority_tag(candidate.priority)}"


def grouped_items(items: Sequence[Item], limit: int = MAX_ITEMS_PER_CATEGORY) -> str:
    """Items grouped under a heading per category, at most ``limit`` per category."""
    sections: List[str] = []
    for category in Category:
        in_category = [i for i in items if i.database == category]
        if not in_category:
            continue
        lines = [f"*{CATEGORY_HEADINGS[category]}* ({len(in_category)})"]
        lines.extend(item_line(i) for i in in_category[:limit])
        if len(in_category) > limit:
            lines.append(f"…and {len(in_category) - limit} more")
        sections.append("\n".join(lines))
    return "\n\n".join(sections)


def backfill_preview(items: Sequence[BackfillCandidate], revised: bool = False) -> str:
    heading = "🏷️ *Revised tag preview*" if revised else "🏷️ *Tag backfill preview*"
    lines = [f"{heading} ({len(items)} items)"]
    for n, item in enumerate(items, start=1):
        lines.append(f"{n}. {item.title} → {', '.join(item.tags)}")
    lines.append(
        "\nReply `yes` (or react ✅) to apply, `no` to cancel, "
        "or `yes except don't tag 'title'` to leave one out."
    )
    return "\n".join(lines)


def filed_title(category: Category, fields: CaptureFields) -> str:
    if category == Category.PEOPLE:
        return fields.person_name or fields.title
    return fields.title
