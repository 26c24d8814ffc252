"""Write the service's OpenAPI document for publishing through AppLink."""

import argparse
import json
from pathlib import Path

from provisioning_api.main import app


def generate_openapi(output: Path) -> None:
  openapi_schema = app.openapi()
  output.write_text(json.dumps(openapi_schema, indent=2), encoding="utf-8")
  print(f"Successfully generated {output}")


if __name__ == "__main__":
  parser = argparse.ArgumentParser(description=__doc__)
  parser.add_argument("--output", type=Path, default=Path("openapi.json"), help="Destination file (default: openapi.json)")
  generate_openapi(parser.parse_args().output)
