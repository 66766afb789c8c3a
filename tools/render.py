#!/usr/bin/env python3
"""tools/render.py

Render the desired VirtualServices for APIRule manifests as multi-document YAML.

Reads APIRule YAML (files or stdin), never talks to the cluster.

Usage examples:
  DEFAULT_DOMAIN_NAME=example.com python3 tools/render.py apirule.yaml > /tmp/vs.yaml

  # Validate the output against the API server without persisting:
  python3 tools/render.py apirule.yaml | kubectl create --dry-run=server -f -
"""

from __future__ import annotations

import os
import sys
from typing import Iterable, List, TextIO

import yaml

# Allow executing from the tools directory without installing as a package
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from apirule import parse_apirule  # noqa: E402
from config import ReconciliationConfig, load_config  # noqa: E402
from virtualservice.creators import new_creator  # noqa: E402


def render(docs: Iterable[dict], cfg: ReconciliationConfig) -> List[dict]:
    creator = new_creator(cfg)
    out = []
    for doc in docs:
        if not doc or doc.get("kind") != "APIRule":
            continue
        out.append(creator.create(parse_apirule(doc)))
    return out


def _read(paths: List[str], stdin: TextIO = sys.stdin) -> List[dict]:
    if not paths:
        return list(yaml.safe_load_all(stdin))
    docs: List[dict] = []
    for p in paths:
        with open(p) as f:
            docs.extend(yaml.safe_load_all(f))
    return docs


def main(argv: List[str]) -> int:
    desired = render(_read(argv), load_config())

    # Multi-doc YAML to stdout
    try:
        yaml.safe_dump_all(desired, sys.stdout, sort_keys=False)
    except BrokenPipeError:
        # Common when piping to `head`; exit cleanly
        return 0

    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
