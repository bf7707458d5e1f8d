#!/usr/bin/env python3
# scripts/run_demo.py
from __future__ import annotations
import os
import sys
import json
import argparse
import traceback
from pathlib import Path
from datetime import datetime, timezone
from dataclasses import dataclass, asdict, replace
from typing import Any, Dict, Optional

# Make repo root importable so `import medicrew...` works when running `python scripts/run_demo.py`
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from jsonschema import ValidationError, validate

from medicrew.core.config import Settings, configure_logging, load_settings
from medicrew.core.generator import analyze_doctor_case, analyze_patient_case, load_schema

MODES = ("patient", "doctor")


@dataclass
class CaseResult:
    case_file: str
    mode: str
    ok: bool
    output_file: Optional[str] = None
    raw_file: Optional[str] = None
    prompt_file: Optional[str] = None
    error: Optional[str] = None
    trace: Optional[str] = None
    validated: bool = False


def _read_json(path: Path) -> Dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def _write_json(path: Path, obj: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")


def _copy_artifact(settings: Settings, name: str, raw_dir: Path, dst_name: str) -> Optional[str]:
    """Copies last_model_raw.txt / last_model_prompt.txt from the data dir under a per-case name."""
    src = settings.data_dir / name
    if not src.exists():
        return None
    raw_dir.mkdir(parents=True, exist_ok=True)
    dst = raw_dir / dst_name
    dst.write_text(src.read_text(encoding="utf-8", errors="ignore"), encoding="utf-8")
    return str(dst.as_posix())


def _location(case: Dict[str, Any]):
    loc = case.get("location")
    if isinstance(loc, dict) and "lat" in loc and "lng" in loc:
        return float(loc["lat"]), float(loc["lng"])
    if isinstance(loc, (list, tuple)) and len(loc) == 2:
        return float(loc[0]), float(loc[1])
    return None


def run_one_case(case_path: Path, out_dir: Path, raw_dir: Path, settings: Settings) -> CaseResult:
    case_stem = case_path.stem
    result = CaseResult(case_file=str(case_path.as_posix()), mode="?", ok=False)

    try:
        case = _read_json(case_path)
        mode = case.get("mode", "patient")
        result.mode = mode
        if mode not in MODES:
            raise ValueError(f"Unknown mode {mode!r}; expected one of {MODES}")

        text = case.get("text", "")
        if mode == "patient":
            output, raw_text = analyze_patient_case(text, location=_location(case), settings=settings, with_raw=True)
        else:
            output, raw_text = analyze_doctor_case(text, settings=settings, with_raw=True)

        # the generator already validated; this guards the file we write
        validate(instance=output, schema=load_schema(mode))
        result.validated = True

        out_path = out_dir / f"output_{case_stem}.json"
        _write_json(out_path, output)
        result.output_file = str(out_path.as_posix())

        raw_dir.mkdir(parents=True, exist_ok=True)
        raw_path = raw_dir / f"raw_{case_stem}.txt"
        raw_path.write_text(raw_text or "", encoding="utf-8", errors="ignore")
        result.raw_file = str(raw_path.as_posix())

        result.ok = True
        result.prompt_file = _copy_artifact(settings, "last_model_prompt.txt", raw_dir, f"prompt_{case_stem}.txt")
        return result

    except ValidationError as e:
        result.error = f"Schema validation failed: {e.message}"
        result.trace = traceback.format_exc(limit=3)
    except Exception as e:
        result.error = f"{type(e).__name__}: {e}"
        result.trace = traceback.format_exc(limit=5)

    result.raw_file = _copy_artifact(settings, "last_model_raw.txt", raw_dir, f"raw_{case_stem}.txt")
    result.prompt_file = _copy_artifact(settings, "last_model_prompt.txt", raw_dir, f"prompt_{case_stem}.txt")
    return result


def main() -> int:
    parser = argparse.ArgumentParser(description="Run demo cases end-to-end and validate outputs.")
    parser.add_argument("--cases_dir", default="data_demo/cases", help="Directory with cases (*.json)")
    parser.add_argument("--out_dir", default="data_demo/outputs", help="Where to write output_*.json")
    parser.add_argument("--raw_dir", default="data_demo/raw", help="Where to write/copy RAW model outputs")
    parser.add_argument("--report", default="data_demo/demo_report.json", help="Machine-readable report path")
    parser.add_argument("--report_md", default="data_demo/demo_report.md", help="Human-readable report path")
    args = parser.parse_args()

    # for demo runs: ensure prompt capture is on unless explicitly disabled
    os.environ.setdefault("SAVE_LAST_PROMPT", "1")
    settings = load_settings()
    configure_logging(settings.log_level)

    # --- fail-fast: basic env sanity (no tokens) ---
    if settings.provider not in ("stub", "gemini"):
        print(f"ERROR: MODEL_PROVIDER={settings.provider!r} is not supported (stub or gemini).", file=sys.stderr)
        return 2
    if settings.provider == "gemini" and not settings.api_key:
        print("ERROR: GEMINI_API_KEY is empty for MODEL_PROVIDER=gemini. Set it in .env.", file=sys.stderr)
        return 2

    cases_dir = Path(args.cases_dir)
    out_dir = Path(args.out_dir)
    raw_dir = Path(args.raw_dir)

    if not cases_dir.exists():
        print(f"ERROR: cases_dir not found: {cases_dir}", file=sys.stderr)
        return 2

    case_files = sorted(cases_dir.glob("*.json"))
    if not case_files:
        print(f"ERROR: no cases found in {cases_dir}", file=sys.stderr)
        return 2

    started = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
    results: list[CaseResult] = []
    ok_count = 0

    print(f"Running {len(case_files)} demo case(s)...")
    for p in case_files:
        r = run_one_case(p, out_dir, raw_dir, settings)
        results.append(r)
        print(f"- {'OK' if r.ok else 'FAILED'}: {p.name} ({r.mode})")
        if not r.ok:
            print(f"  reason: {r.error}")
            if r.raw_file:
                print(f"  raw:    {r.raw_file}")
        ok_count += 1 if r.ok else 0

    finished = datetime.now(timezone.utc).replace(microsecond=0).isoformat()

    run_config = asdict(replace(settings, api_key="***" if settings.api_key else ""))
    run_config["data_dir"] = str(settings.data_dir.as_posix())
    report_obj = {
        "started_at": started,
        "finished_at": finished,
        "run_config": run_config,
        "cases_total": len(case_files),
        "cases_ok": ok_count,
        "cases_failed": len(case_files) - ok_count,
        "results": [asdict(r) for r in results],
    }

    report_path = Path(args.report)
    _write_json(report_path, report_obj)

    md_lines = [
        "# Demo run report",
        "",
        f"- started_at: `{started}`",
        f"- finished_at: `{finished}`",
        f"- provider: `{settings.provider}`",
        f"- total: **{len(case_files)}** | ok: **{ok_count}** | failed: **{len(case_files) - ok_count}**",
        "",
        "## Results",
        "",
        "| case | mode | status | output | raw | error |",
        "|---|---|---:|---|---|---|",
    ]
    for r in results:
        md_lines.append(
            f"| `{Path(r.case_file).name}` | {r.mode} | **{'OK' if r.ok else 'FAILED'}** | "
            f"{('`'+r.output_file+'`') if r.output_file else ''} | "
            f"{('`'+r.raw_file+'`') if r.raw_file else ''} | "
            f"{(r.error or '').replace('|','&#124;')} |"
        )

    report_md_path = Path(args.report_md)
    report_md_path.parent.mkdir(parents=True, exist_ok=True)
    report_md_path.write_text("\n".join(md_lines) + "\n", encoding="utf-8")

    print("")
    print(f"Report: {report_path.as_posix()}")
    print(f"Report (md): {report_md_path.as_posix()}")
    print(f"Outputs: {out_dir.as_posix()}")
    print(f"RAW: {raw_dir.as_posix()}")

    return 0 if ok_count == len(case_files) else 1


if __name__ == "__main__":
    raise SystemExit(main())
