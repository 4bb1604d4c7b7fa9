# feasibility/main.py
"""
Operational feasibility engine - FastAPI main file.

Loads planning rules and FTL limits from feasibility/rules, exposes:
- GET  /                  -> "Feasibility Engine Ready!" + loaded rule summary
- GET  /rules             -> current planning rules, FTL limits and provenance
- POST /rules/reload      -> reload rules from disk
- POST /conflicts         -> schedule conflicts + per-flight index
- POST /conflicts/heatmap -> hourly aircraft load
- POST /ftl               -> FTL exposure for a projected flight
- POST /crew/validate     -> crew go / no-go for a flight
- POST /planning/{action} -> lock / unlock / validate the plan

Run with: uvicorn feasibility.main:app
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from pydantic import BaseModel

from .load_rules import RULES_DIR, RuleSet, load_rules_from_folder
from .models import FtlLimits, PlanningRules
from .routes import router as feasibility_router

log = logging.getLogger("uvicorn.error")


# ---------- RESPONSE MODELS ----------
class RulesView(BaseModel):
    planning_rules: PlanningRules
    ftl_limits: FtlLimits
    meta: Dict[str, Any]
    invalid: List[Dict[str, Any]] = []


# ---------- RULE STATE ----------
def _load_into_state(app: FastAPI, folder: Optional[Path] = None) -> List[Dict[str, Any]]:
    folder = folder or getattr(app.state, "rules_dir", None) or RULES_DIR
    try:
        ruleset, invalid = load_rules_from_folder(folder)
    except Exception as e:
        log.exception("load_rules_from_folder failed: %s", e)
        ruleset, invalid = RuleSet(), [{"file": "loader_exception", "error": str(e)}]

    app.state.rules_dir = folder
    app.state.ruleset = ruleset
    app.state.invalid_rules = invalid
    log.info(
        "Rule loader: %d source file(s), %d invalid, version %s",
        len(ruleset.meta.get("source_files", [])), len(invalid), ruleset.version,
    )
    return invalid


# ---------- LIFESPAN STARTUP ----------
@asynccontextmanager
async def _lifespan(app: FastAPI):
    _load_into_state(app)
    yield


app = FastAPI(title="Operational Feasibility Engine", lifespan=_lifespan)

app.include_router(feasibility_router)


def _current(app_obj: FastAPI) -> RuleSet:
    ruleset = getattr(app_obj.state, "ruleset", None)
    return ruleset if ruleset is not None else RuleSet()


# ---------- ROOT ----------
@app.get("/")
def root():
    ruleset = _current(app)
    return {
        "message": "Feasibility Engine Ready!",
        "ruleset_version": ruleset.version,
        "source_files": ruleset.meta.get("source_files", []),
        "invalid_rules": len(getattr(app.state, "invalid_rules", [])),
    }


# ---------- CURRENT RULES ----------
@app.get("/rules", response_model=RulesView)
def get_rules():
    ruleset = _current(app)
    return RulesView(
        planning_rules=ruleset.planning_rules,
        ftl_limits=ruleset.ftl_limits,
        meta=ruleset.meta,
        invalid=getattr(app.state, "invalid_rules", []),
    )


# ---------- RELOAD RULES ----------
@app.post("/rules/reload")
def reload_rules():
    invalid = _load_into_state(app)
    ruleset = _current(app)
    return {
        "loaded": len(ruleset.meta.get("source_files", [])),
        "ruleset_hash_sha256": ruleset.meta.get("ruleset_hash_sha256"),
        "invalid": invalid,
    }
