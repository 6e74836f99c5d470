"""
tech_tags.py -- Keyword-based tech stack extraction for SwissDevMap.

Turns a free-text blob (job posting body, page text) into a set of
(tag, category) pairs.  Used by every text-based collector.
"""

import re
from functools import lru_cache

# keyword (lowercase) -> category
TECH_KEYWORDS: dict[str, str] = {
    # Frontend
    "react": "frontend", "vue": "frontend", "angular": "frontend", "svelte": "frontend",
    "nextjs": "frontend", "nuxt": "frontend", "next.js": "frontend",
    # Backend
    "node": "backend", "node.js": "backend", "express": "backend", "fastify": "backend",
    "java": "backend", "spring": "backend", "kotlin": "backend", "scala": "backend",
    "python": "backend", "django": "backend", "fastapi": "backend", "flask": "backend",
    "go": "backend", "golang": "backend", "rust": "backend", "c#": "backend",
    "c++": "backend", "ruby": "backend", "rails": "backend", "php": "backend",
    "typescript": "backend", "elixir": "backend", "clojure": "backend",
    # Cloud
    "aws": "cloud", "azure": "cloud", "gcp": "cloud", "google cloud": "cloud",
    # DevOps
    "kubernetes": "devops", "docker": "devops", "terraform": "devops", "ansible": "devops",
    "jenkins": "devops", "gitlab": "devops", "github": "devops", "kafka": "devops",
    "spark": "devops", "airflow": "devops",
    # Data
    "postgresql": "backend", "postgres": "backend", "mysql": "backend", "mongodb": "backend",
    "redis": "backend", "elasticsearch": "backend", "clickhouse": "backend",
    # Mobile
    "swift": "frontend", "react native": "frontend", "flutter": "frontend",
}

# Canonical display names where plain capitalisation gets the brand wrong
_DISPLAY_NAMES = {
    "go": "Go", "golang": "Go",
    "nextjs": "Next.js", "next.js": "Next.js",
    "nuxt": "Nuxt.js",
    "node": "Node.js", "node.js": "Node.js",
    "fastapi": "FastAPI",
    "c#": "C#", "c++": "C++",
    "php": "PHP",
    "typescript": "TypeScript",
    "aws": "AWS", "gcp": "GCP", "google cloud": "GCP",
    "gitlab": "GitLab", "github": "GitHub",
    "postgresql": "PostgreSQL", "postgres": "PostgreSQL",
    "mysql": "MySQL", "mongodb": "MongoDB",
    "elasticsearch": "Elasticsearch", "clickhouse": "ClickHouse",
    "react native": "React Native",
}

def display_name(keyword: str) -> str:
    """Canonical tag name for a dictionary keyword."""
    kw = keyword.lower()
    if kw in _DISPLAY_NAMES:
        return _DISPLAY_NAMES[kw]
    return kw[:1].upper() + kw[1:]


@lru_cache(maxsize=1024)
def keyword_pattern(keyword: str) -> re.Pattern:
    """Whole-word, case-insensitive pattern for a keyword.

    Lookarounds instead of \\b: \\b needs a word char on one side, so it never
    matches after the trailing '+' / '#' of c++ / c#.
    """
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)", re.IGNORECASE)


def extract_tags(text: str | None, keywords: dict[str, str] | None = None) -> set[tuple[str, str]]:
    """Return the distinct (tag, category) pairs whose keyword occurs in text.

    Tags are deduplicated by display name; when two keywords share one
    (go / golang), the first in dictionary order sets the category.
    """
    if not text:
        return set()
    if keywords is None:
        keywords = TECH_KEYWORDS

    found: dict[str, str] = {}
    for keyword, category in keywords.items():
        tag = display_name(keyword)
        if tag in found:
            continue
        if keyword_pattern(keyword).search(text):
            found[tag] = category
    return set(found.items())


def format_tags(tags) -> str:
    """'AWS, React, ...' for log lines."""
    names = sorted({t[0] for t in tags})
    return ", ".join(names) if names else "none detected"
