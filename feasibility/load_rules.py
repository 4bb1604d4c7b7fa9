# feasibility/load_rules.py
"""
Rule loader for the planning / FTL configuration JSON files.

Every *.json file of the folder is read in sorted order and deep-merged, so a
later file (e.g. 'zz_site_overrides.json') refines an earlier one. Known sections:
 - planning_rules : PlanningRules (turnaround, buffer, daily cycles, crew duty span)
 - ftl_limits     : FtlLimits (daily / rolling ceilings, min rest, risk thresholds)
 - meta           : free-form (version, notes)

Returns (RuleSet, invalid_reports). A file that cannot be read or parsed, or a
section that fails validation, is reported and left out of the merge; the
remaining files still load. Nothing is stored at module level: the caller
(the FastAPI lifespan) decides where the rule set lives.
"""
from pathlib import Path
import datetime
import hashlib
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import DEFAULT_RULES, FTL_LIMITS, FtlLimits, PlanningRules

log = logging.getLogger("rule_loader")

RULES_DIR = Path(__file__).resolve().parent / "rules"

SECTION_MODELS = {
    "planning_rules": PlanningRules,
    "ftl_limits": FtlLimits,
}


# ---------------------------------------------------------
# RuleSet Model
# ---------------------------------------------------------
class RuleSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    planning_rules: PlanningRules = DEFAULT_RULES
    ftl_limits: FtlLimits = FTL_LIMITS
    meta: Dict[str, Any] = Field(default_factory=dict)

    @property
    def version(self) -> Optional[str]:
        return self.meta.get("version")


# ---------------------------------------------------------
# Deep-merge with array concat and dedupe
# ---------------------------------------------------------
def deep_merge_with_array_concat(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge dicts. Lists on the same key are concatenated and deduped by their
    JSON form; any other value from b replaces the one from a.
    """
    out = dict(a)
    for k, v in (b or {}).items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = deep_merge_with_array_concat(out[k], v)
        elif k in out and isinstance(out[k], list) and isinstance(v, list):
            seen = set()
            dedup = []
            for item in out[k] + v:
                key = json.dumps(item, sort_keys=True, default=str)
                if key not in seen:
                    dedup.append(item)
                    seen.add(key)
            out[k] = dedup
        else:
            out[k] = v
    return out


# ---------------------------------------------------------
# Provenance
# ---------------------------------------------------------
def compute_ruleset_provenance(merged: Dict[str, Any], source_files: List[str]) -> Dict[str, Any]:
    """
    Deterministic provenance for a merged rule dict: the hash only depends on the
    merged content, loaded_at records when this copy was read.
    """
    serial = json.dumps(merged, sort_keys=True, default=str)
    return {
        "ruleset_hash_sha256": hashlib.sha256(serial.encode("utf-8")).hexdigest(),
        "ruleset_version": (merged.get("meta") or {}).get("version"),
        "loaded_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "source_files": list(source_files),
    }


def _validate_sections(fname: str, parsed: Dict[str, Any], invalid: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop (and report) the known sections of one file that do not validate on their own."""
    accepted = {}
    for key, value in parsed.items():
        model = SECTION_MODELS.get(key)
        if model is None:
            if key != "meta":
                log.warning("Ignoring unknown section %r in %s", key, fname)
                continue
            if not isinstance(value, dict):
                invalid.append({"file": fname, "section": key, "error": "meta must be an object"})
                continue
        else:
            try:
                model.model_validate(value)
            except ValidationError as e:
                invalid.append({"file": fname, "section": key, "error": f"validation_error: {e}"})
                log.error("Invalid section %s in %s", key, fname)
                continue
        accepted[key] = value
    return accepted


# ---------------------------------------------------------
# Main Loader
# ---------------------------------------------------------
def load_rules_from_folder(folder: Path) -> Tuple[RuleSet, List[Dict[str, Any]]]:
    """
    Loads all rule JSON files from folder.
    Returns:
        (RuleSet, INVALID_REPORTS)
    A missing folder yields the built-in defaults and an empty report list.
    """
    invalid: List[Dict[str, Any]] = []
    merged: Dict[str, Any] = {}
    source_files: List[str] = []

    folder = Path(folder)
    if not folder.exists() or not folder.is_dir():
        log.warning("Rules folder does not exist: %s", folder)
        return RuleSet(meta=compute_ruleset_provenance(merged, source_files)), invalid

    # Load *.json files deterministically
    for f in sorted(folder.glob("*.json")):
        fname = f.name
        try:
            text = f.read_text(encoding="utf-8")
        except OSError as e:
            invalid.append({"file": fname, "error": f"read_error: {e}"})
            log.error("Failed to read %s: %s", fname, e)
            continue

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            invalid.append({"file": fname, "error": f"json_parse_error: {e}"})
            log.error("JSON parse error in %s: %s", fname, e)
            continue

        if not isinstance(parsed, dict):
            invalid.append({"file": fname, "error": "top-level JSON value must be an object"})
            continue

        merged = deep_merge_with_array_concat(merged, _validate_sections(fname, parsed, invalid))
        source_files.append(fname)
        log.info("Loaded rules from %s", fname)

    meta = dict(merged.get("meta") or {})
    meta.update(compute_ruleset_provenance(merged, source_files))

    try:
        ruleset = RuleSet(
            planning_rules=PlanningRules.model_validate(merged.get("planning_rules", {})),
            ftl_limits=FtlLimits.model_validate(merged.get("ftl_limits", {})),
            meta=meta,
        )
    except ValidationError as e:
        # each section was valid alone but the merge is not (e.g. reordered risk ratios)
        invalid.append({"stage": "merge", "error": f"validation_error: {e}"})
        log.error("Merged rules are invalid, falling back to defaults: %s", e)
        ruleset = RuleSet(meta=meta)

    log.info(
        "Rule loader summary: %d file(s), %d invalid, hash %s",
        len(source_files), len(invalid), meta["ruleset_hash_sha256"][:12],
    )
    return ruleset, invalid


__all__ = [
    "RULES_DIR",
    "RuleSet",
    "compute_ruleset_provenance",
    "deep_merge_with_array_concat",
    "load_rules_from_folder",
]
