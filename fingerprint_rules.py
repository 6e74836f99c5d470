"""
fingerprint_rules.py -- Wappalyzer-style rule engine for SwissDevMap.

A rule is either a regex over the page HTML + script URLs ("pattern") or a
predicate over the response headers ("predicate").  Rules are evaluated in
order; the first rule to report a tag decides its category.
"""

import logging
import re
from typing import Callable, NamedTuple

logger = logging.getLogger("swissdevmap.fingerprint_rules")


class FingerprintRule(NamedTuple):
    kind: str          # "pattern" | "predicate"
    matcher: object    # re.Pattern for "pattern", callable for "predicate"
    tag: str
    category: str


class Headers(dict):
    """Lower-cased header map; a missing header reads as ''."""

    def __init__(self, raw=None):
        super().__init__()
        for name, value in (raw or {}).items():
            self[str(name).lower()] = "" if value is None else str(value)

    def __missing__(self, key):
        return ""


def pattern_rule(regex: str, tag: str, category: str, flags: int = 0) -> FingerprintRule:
    return FingerprintRule("pattern", re.compile(regex, flags), tag, category)


def predicate_rule(fn: Callable[[Headers, str, list], bool], tag: str, category: str) -> FingerprintRule:
    return FingerprintRule("predicate", fn, tag, category)


FINGERPRINT_RULES: list[FingerprintRule] = [
    # Frontend frameworks
    pattern_rule(r"__NEXT_DATA__", "Next.js", "frontend"),
    pattern_rule(r"window\.__nuxt__", "Nuxt.js", "frontend"),
    pattern_rule(r"ng-version=", "Angular", "frontend"),
    pattern_rule(r"__vue_", "Vue", "frontend"),
    pattern_rule(r"react\.production\.min\.js|ReactDOM", "React", "frontend"),
    pattern_rule(r"gatsby-", "Gatsby", "frontend"),
    pattern_rule(r"svelte", "Svelte", "frontend"),
    # Backend / server
    predicate_rule(lambda h, html, scripts: "express" in h["x-powered-by"].lower(), "Node.js", "backend"),
    predicate_rule(lambda h, html, scripts: "php" in h["x-powered-by"].lower(), "PHP", "backend"),
    predicate_rule(lambda h, html, scripts: "nginx" in h["server"].lower(), "Nginx", "devops"),
    predicate_rule(lambda h, html, scripts: "apache" in h["server"].lower(), "Apache", "devops"),
    predicate_rule(lambda h, html, scripts: "asp.net" in h["x-powered-by"].lower(), "ASP.NET", "backend"),
    # Cloud / CDN
    predicate_rule(lambda h, html, scripts: bool(h["x-amz-cf-id"] or "CloudFront" in h["x-cache"]), "AWS", "cloud"),
    predicate_rule(lambda h, html, scripts: bool(h["x-azure-ref"] or "Microsoft" in h["server"]), "Azure", "cloud"),
    predicate_rule(lambda h, html, scripts: bool("Google" in h["server"] or h["x-goog-hash"]), "GCP", "cloud"),
    predicate_rule(lambda h, html, scripts: bool(h["cf-ray"] or "cloudflare" in h["server"].lower()), "Cloudflare", "devops"),
    # Analytics / DX
    pattern_rule(r"gtag\(|google-analytics", "Google Analytics", "devops"),
    pattern_rule(r"segment\.com/analytics", "Segment", "devops"),
    pattern_rule(r"smartlookCallback|smartlook", "Smartlook", "devops"),
    pattern_rule(r"wp-content|wordpress", "WordPress", "backend"),
    # CSS frameworks
    pattern_rule(r"bootstrap\.min\.css|bootstrap\.css", "Bootstrap", "frontend"),
    pattern_rule(r"tailwindcss|tailwind\.", "Tailwind CSS", "frontend"),
]


def _rule_matches(rule: FingerprintRule, headers: Headers, html: str,
                  scripts: list[str], combined: str) -> bool:
    if rule.kind == "pattern":
        return rule.matcher.search(combined) is not None
    if rule.kind == "predicate":
        try:
            return bool(rule.matcher(headers, html, scripts))
        except Exception as e:
            logger.debug("predicate for %s raised %s, treating as no match", rule.tag, e)
            return False
    raise ValueError(f"unknown fingerprint rule kind: {rule.kind!r}")


def apply_fingerprints(headers: dict | None, html: str | None, scripts: list[str] | None,
                       rules: list[FingerprintRule] | None = None) -> list[tuple[str, str]]:
    """Evaluate rules against one page. Returns distinct (tag, category) in rule order."""
    if rules is None:
        rules = FINGERPRINT_RULES
    hdrs = headers if isinstance(headers, Headers) else Headers(headers)
    html = html or ""
    scripts = [s for s in (scripts or []) if s]
    combined = html + " " + " ".join(scripts)

    found: dict[str, str] = {}
    for rule in rules:
        if rule.tag in found:
            continue  # first match wins
        if _rule_matches(rule, hdrs, html, scripts, combined):
            found[rule.tag] = rule.category
    return list(found.items())
