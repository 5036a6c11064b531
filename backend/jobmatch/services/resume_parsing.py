"""
Best-effort extraction of profile fields from plain resume text.

Every pass is an independent regex/line heuristic. Known blind spots:
- phone only recognises 3-3-4 digit groupings (North American shape, optional +1);
- location needs an explicit cue ("Location:", "based in") or a "City, ST" shape;
- name is simply the first short line near the top, so a heading like "RESUME" wins;
- skills come from a fixed vocabulary; anything outside it is ignored.
"""
import re
from typing import Any

from ..schemas.resume_profile import ParsedResumeProfile


_HEADING_ALIASES: dict[str, list[str]] = {
    "skills": [
        "skills",
        "technical skills",
        "key skills",
        "core skills",
        "skills & tools",
        "technologies",
        "tech stack",
    ],
    "experience": [
        "experience",
        "work experience",
        "professional experience",
        "employment",
        "employment history",
        "work history",
        "internships",
        "projects",
    ],
    "education": [
        "education",
        "academic",
        "academic background",
        "education & certifications",
        "certifications",
    ],
    "summary": [
        "summary",
        "profile",
        "about me",
        "objective",
        "professional summary",
    ],
}

_LINE_CLEAN_RE = re.compile(r"[\t ]{2,}")
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_RE = re.compile(r"(?<!\d)(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\d)")
_LOCATION_CUE_RE = re.compile(
    r"(?i:located in|based in|location)\s*:?\s*([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?(?:,\s*[A-Z][A-Za-z]+)?)"
)
_CITY_STATE_RE = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?,\s*[A-Z]{2})\b")
_YEAR_RE = re.compile(
    r"\b((?:19|20)\d{2})\b(\s*(?:[-–—/,]|to\b)?\s*\(?\s*(?:present|current)\b)?",
    re.IGNORECASE,
)
_CONTACT_HINT_RE = re.compile(r"@|phone|linkedin|github\.com|https?://", re.IGNORECASE)

# Lowercase vocabulary; regex metacharacters are escaped when the pattern is built.
SKILL_VOCABULARY: tuple[str, ...] = (
    # Programming languages
    "javascript", "typescript", "python", "java", "csharp", "c#", "c++", "cpp", "ruby", "php",
    "golang", "rust", "kotlin", "scala", "swift",
    # Frontend
    "react", "reactjs", "vue", "angular", "html", "css", "tailwind", "bootstrap", "next.js", "nextjs",
    "nuxt", "svelte",
    # Backend
    "nodejs", "node.js", "express", "django", "flask", "fastapi", "spring", "spring boot", "rails",
    "laravel", "asp.net",
    # Databases
    "mongodb", "postgresql", "mysql", "redis", "elasticsearch", "sql", "firestore", "dynamodb",
    # Tools & platforms
    "docker", "kubernetes", "aws", "gcp", "azure", "git", "gitlab", "github", "jenkins", "ci/cd",
    # Practices & others
    "rest", "graphql", "microservices", "api", "agile", "scrum", "testing", "jest", "mocha", "webpack",
    "machine learning", "ml", "ai", "deep learning", "nlp", "computer vision",
    "aws lambda", "serverless", "firebase", "realtime database",
    "linux", "unix", "bash", "shell", "powershell",
    "figma", "adobe", "ui/ux", "design", "wireframing",
    "data analysis", "analytics", "tableau", "powerbi", "power bi", "excel",
)

SKILL_ALIASES: dict[str, str] = {
    "javascript": "JavaScript",
    "typescript": "TypeScript",
    "csharp": "C#",
    "c#": "C#",
    "c++": "C++",
    "cpp": "C++",
    "php": "PHP",
    "golang": "Go",
    "reactjs": "React",
    "html": "HTML",
    "css": "CSS",
    "next.js": "Next.js",
    "nextjs": "Next.js",
    "nodejs": "Node.js",
    "node.js": "Node.js",
    "fastapi": "FastAPI",
    "spring boot": "Spring Boot",
    "asp.net": "ASP.NET",
    "mongodb": "MongoDB",
    "postgresql": "PostgreSQL",
    "mysql": "MySQL",
    "dynamodb": "DynamoDB",
    "sql": "SQL",
    "aws": "AWS",
    "gcp": "GCP",
    "gitlab": "GitLab",
    "github": "GitHub",
    "ci/cd": "CI/CD",
    "rest": "REST",
    "graphql": "GraphQL",
    "api": "API",
    "ml": "ML",
    "ai": "AI",
    "nlp": "NLP",
    "aws lambda": "AWS Lambda",
    "powershell": "PowerShell",
    "ui/ux": "UI/UX",
    "powerbi": "Power BI",
}

# Alphanumeric lookarounds instead of \b so "c++", "c#" and "ci/cd" still match whole.
_SKILL_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (s, re.compile(rf"(?<![a-z0-9]){re.escape(s)}(?![a-z0-9])", re.IGNORECASE)) for s in SKILL_VOCABULARY
]
_SKILL_WORDS = set(SKILL_VOCABULARY)


def _normalize_line(s: str) -> str:
    s = s.replace("\r\n", "\n").replace("\r", "\n")
    s = _LINE_CLEAN_RE.sub(" ", s).strip()
    return s


def _split_lines(text: str) -> list[str]:
    lines = (text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return [_normalize_line(line) for line in lines]


def _canonical_heading(line: str) -> str | None:
    """
    Returns canonical section key if the line looks like a heading.
    """
    raw = _normalize_line(line)
    if not raw:
        return None

    # Drop trailing punctuation like ":" or "-"
    key = raw.strip().strip(":").strip("-").strip().lower()
    key = re.sub(r"[^a-z0-9 &]+", "", key).strip()
    if not key:
        return None

    for canonical, aliases in _HEADING_ALIASES.items():
        if key == canonical or key in aliases:
            return canonical
    return None


def extract_section_texts(*, text: str) -> dict[str, str]:
    """
    Find section boundaries by scanning headings line-by-line and slice out their bodies.
    """
    lines = _split_lines(text)
    hits: list[tuple[int, str]] = []
    for i, line in enumerate(lines):
        canon = _canonical_heading(line)
        if canon and not (hits and hits[-1][1] == canon and (i - hits[-1][0]) <= 2):
            hits.append((i, canon))

    out: dict[str, str] = {}
    for idx, (line_idx, canon) in enumerate(hits):
        end = hits[idx + 1][0] if idx + 1 < len(hits) else len(lines)
        body = "\n".join(lines[line_idx + 1 : end]).strip()
        if body and canon not in out:
            out[canon] = body
    return out


def extract_email(text: str) -> str | None:
    m = _EMAIL_RE.search(text or "")
    return m.group(0) if m else None


def extract_phone(text: str) -> str | None:
    m = _PHONE_RE.search(text or "")
    return m.group(0).strip() if m else None


def extract_name(lines: list[str]) -> str | None:
    for line in [ln for ln in lines if ln][:5]:
        if "@" in line or "(" in line:
            continue
        if len(line) < 50 and len(line.split()) <= 4:
            return line
    return None


def extract_location(text: str) -> str | None:
    m = _LOCATION_CUE_RE.search(text or "")
    if m:
        return m.group(1).strip()
    for m in _CITY_STATE_RE.finditer(text or ""):
        place, _, code = m.group(1).partition(",")
        # "Python, AI" has the right shape but is a skills list.
        if place.strip().lower() in _SKILL_WORDS or code.strip().lower() in _SKILL_WORDS:
            continue
        return m.group(1).strip()
    return None


def extract_batch(text: str) -> str | None:
    """A year next to "present"/"current" wins; otherwise the first year mentioned."""
    first: str | None = None
    for m in _YEAR_RE.finditer(text or ""):
        if m.group(2):
            return m.group(1)
        if first is None:
            first = m.group(1)
    return first


def normalize_skill_name(skill: str) -> str:
    key = skill.lower()
    if key in SKILL_ALIASES:
        return SKILL_ALIASES[key]
    return " ".join(w[:1].upper() + w[1:] for w in key.split(" "))


def extract_skills(text: str) -> set[str]:
    found: set[str] = set()
    if not text:
        return found
    for skill, pattern in _SKILL_PATTERNS:
        if pattern.search(text):
            found.add(normalize_skill_name(skill))
    return found


def _is_summary_line(line: str) -> bool:
    if len(line) <= 20:
        return False
    if _CONTACT_HINT_RE.search(line) or _PHONE_RE.search(line):
        return False
    return _canonical_heading(line) is None


def extract_summary(lines: list[str], sections: dict[str, Any]) -> str | None:
    source = _split_lines(sections["summary"]) if sections.get("summary") else lines
    picked: list[str] = []
    for line in source:
        if _is_summary_line(line):
            picked.append(line)
            if len(picked) == 3:
                break
        elif picked:
            break
    return " ".join(picked) if picked else None


def parse_resume_text(*, text: str) -> ParsedResumeProfile:
    """
    Parse resume text into a ParsedResumeProfile. Missing fields come back as None;
    `skills` is always a set, possibly empty.
    """
    raw_text = (text or "").strip()
    lines = _split_lines(raw_text)
    sections = extract_section_texts(text=raw_text)

    return ParsedResumeProfile(
        skills=extract_skills(raw_text),
        email=extract_email(raw_text),
        phone=extract_phone(raw_text),
        location=extract_location(raw_text),
        name=extract_name(lines),
        batch=extract_batch(raw_text),
        summary=extract_summary(lines, sections),
        experience=sections.get("experience") or None,
        education=sections.get("education") or None,
    )
