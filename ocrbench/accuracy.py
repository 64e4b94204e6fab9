"""Character accuracy of one image's OCR output against ground truth.

Run as ``python -m ocrbench.accuracy --ground_truth labels.json
--output_dir output --image_name <stem>``. The result is printed as a single
``SINGLE_ACC: {...}`` line, which is what the benchmark parses.
"""
from __future__ import annotations

import argparse
import json
import sys
import unicodedata
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import jiwer

MARKER = "SINGLE_ACC:"

_PUNCTUATION = (
    "＂＃＄％＆＇（）＊＋，－．／：；＜＝＞？＠［＼］＾＿｀｛｜｝～"
    "·｜「」『』《》〈〉（）"
    ".,;:!?\"'()[]{}<>@#$%^&*-_=+|\\`~"
    "●"
)
_WHITESPACE = " \t\n\r\f\v"
_TRANSLATOR = str.maketrans("", "", _PUNCTUATION + _WHITESPACE)


def normalize_text(text: str) -> str:
    """NFKC fold, lowercase and drop punctuation and whitespace."""

    if not isinstance(text, str):
        return ""
    return unicodedata.normalize("NFKC", text).lower().translate(_TRANSLATOR)


def character_metrics(reference: str, hypothesis: str) -> Dict[str, Any]:
    ref = normalize_text(reference)
    hyp = normalize_text(hypothesis)
    if not ref:
        return {
            "character_accuracy": 1.0 if not hyp else 0.0,
            "character_error_rate": 0.0 if not hyp else 1.0,
            "reference_length": 0,
            "hypothesis_length": len(hyp),
            "substitutions": 0,
            "insertions": len(hyp),
            "deletions": 0,
        }
    if not hyp:
        return {
            "character_accuracy": 0.0,
            "character_error_rate": 1.0,
            "reference_length": len(ref),
            "hypothesis_length": 0,
            "substitutions": 0,
            "insertions": 0,
            "deletions": len(ref),
        }
    output = jiwer.process_characters(ref, hyp)
    error = output.cer
    return {
        "character_accuracy": max(0.0, 1.0 - error),
        "character_error_rate": error,
        "reference_length": len(ref),
        "hypothesis_length": len(hyp),
        "substitutions": output.substitutions,
        "insertions": output.insertions,
        "deletions": output.deletions,
    }


def _texts(items: Iterable[Any]) -> List[str]:
    texts: List[str] = []
    for item in items:
        if isinstance(item, dict) and "text" in item:
            texts.append(str(item["text"]))
        elif isinstance(item, str):
            texts.append(item)
    return texts


def load_ground_truth(path: Path, image_name: str) -> Optional[str]:
    """Return the concatenated reference text for ``image_name``.

    Keys are matched exactly first, then by file stem, so labels keyed by
    ``image_0.png`` resolve for ``image_0``.
    """

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Ground truth file must contain a JSON object")
    stem = Path(image_name).stem
    entry = data.get(image_name)
    if entry is None:
        for key, value in data.items():
            if Path(key).stem == stem:
                entry = value
                break
    if entry is None:
        return None
    if isinstance(entry, str):
        return entry
    return "".join(_texts(entry))


def load_prediction(output_dir: Path, image_name: str) -> Optional[str]:
    result_path = output_dir / f"{Path(image_name).stem}_res.json"
    if not result_path.exists():
        return None
    document = json.loads(result_path.read_text(encoding="utf-8"))
    payload = document.get("res", document) if isinstance(document, dict) else {}
    return "".join(str(text) for text in payload.get("rec_texts") or [])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Calculate OCR accuracy for a single image")
    parser.add_argument("--ground_truth", type=Path, required=True)
    parser.add_argument("--output_dir", type=Path, required=True)
    parser.add_argument("--image_name", type=str, required=True)
    parser.add_argument("--debug", action="store_true", default=False)
    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    try:
        reference = load_ground_truth(args.ground_truth, args.image_name)
        hypothesis = load_prediction(args.output_dir, args.image_name)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}")
        return 1
    if reference is None:
        print(f"Error: ground truth not found for image: {args.image_name}")
        return 1
    if hypothesis is None:
        print(f"Error: OCR result not found for image: {args.image_name}")
        return 1
    if args.debug:
        print(f"Reference: {normalize_text(reference)}")
        print(f"Hypothesis: {normalize_text(hypothesis)}")
    metrics = character_metrics(reference, hypothesis)
    print(f"{MARKER} {json.dumps(metrics, ensure_ascii=False)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
