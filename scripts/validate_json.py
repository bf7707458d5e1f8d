import json
import sys
from pathlib import Path

from jsonschema import validate

BASE = Path(__file__).resolve().parents[1]
if str(BASE) not in sys.path:
    sys.path.insert(0, str(BASE))

from medicrew.core.generator import load_schema

KINDS = ["patient", "doctor", "doctor_profile", "tracking_update"]


def main():
    import argparse
    p = argparse.ArgumentParser()
    p.add_argument("--schema", choices=KINDS, required=True)
    p.add_argument("--file", required=True)
    args = p.parse_args()

    data = json.loads(Path(args.file).read_text(encoding="utf-8"))
    validate(instance=data, schema=load_schema(args.schema))
    print("OK")


if __name__ == "__main__":
    main()
