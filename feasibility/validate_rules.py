# feasibility/validate_rules.py
# Checks every .json in a rules folder (feasibility/rules by default):
#   python -m feasibility.validate_rules [folder]
# Syntax errors are printed with file/line/col context, known sections are
# validated against the engine's models.
# Exit codes: 0 all good, 1 folder missing, 2 invalid files.

import json
from pathlib import Path
import sys
from typing import List, Optional

from pydantic import ValidationError

from .load_rules import RULES_DIR, SECTION_MODELS


def _print_context(txt: str, lineno: int) -> None:
    lines = txt.splitlines()
    ln = lineno - 1
    start = max(0, ln - 2)
    end = min(len(lines), ln + 2)
    print("---- context ----")
    for i in range(start, end):
        marker = ">>" if i == ln else "  "
        print(f"{marker} {i+1:4d}: {lines[i]}")
    print("-----------------")


def validate_json_file(p: Path) -> bool:
    try:
        txt = p.read_text(encoding="utf-8")
    except OSError as e:
        print(f"{p.name}: ERROR reading file: {e}")
        return False
    try:
        parsed = json.loads(txt)
    except json.JSONDecodeError as e:
        print(f"{p.name}: JSON parse error: {e.msg} (line {e.lineno}, col {e.colno})")
        _print_context(txt, e.lineno)
        return False

    if not isinstance(parsed, dict):
        print(f"{p.name}: top-level value must be an object")
        return False

    ok = True
    for section, model in SECTION_MODELS.items():
        if section not in parsed:
            continue
        try:
            model.model_validate(parsed[section])
        except ValidationError as e:
            ok = False
            print(f"{p.name}: section '{section}' is invalid:")
            for err in e.errors():
                loc = ".".join(str(x) for x in err["loc"]) or section
                print(f"    {loc}: {err['msg']}")
    unknown = sorted(k for k in parsed if k not in SECTION_MODELS and k != "meta")
    if unknown:
        print(f"{p.name}: note: unknown section(s) ignored by the loader: {', '.join(unknown)}")
    if ok:
        print(f"{p.name}: OK")
    return ok


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    folder = Path(args[0]) if args else RULES_DIR
    if not folder.is_dir():
        print("Rules folder not found:", folder.resolve())
        return 1
    files = sorted(folder.glob("*.json"))
    if not files:
        print("No .json files found in:", folder.resolve())
        return 0
    ok_count = 0
    bad_count = 0
    for f in files:
        if validate_json_file(f):
            ok_count += 1
        else:
            bad_count += 1
    print(f"\nSummary: {ok_count} OK, {bad_count} INVALID ({len(files)} files checked)")
    return 2 if bad_count else 0


if __name__ == "__main__":
    sys.exit(main())
