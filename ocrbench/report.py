"""Formatting of the stdout contract and the on-disk result reports."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List

from .metrics import BatchReport, BatchSummary, PerImageMetrics

PER_IMAGE_PREFIX = "PER_IMAGE_RESULT:"
TIMING_PREFIX = "TIMING_INFO:"
RULE_WIDTH = 60


def per_image_line(metrics: PerImageMetrics) -> str:
    return (
        f"{PER_IMAGE_PREFIX}{{\"filename\":{json.dumps(metrics.filename, ensure_ascii=False)}"
        f",\"inference_ms\":{metrics.inference_ms:.2f}"
        f",\"fps\":{metrics.fps:.2f}"
        f",\"chars_per_second\":{metrics.chars_per_second:.2f}"
        f",\"total_chars\":{metrics.total_chars}"
        f",\"accuracy\":{metrics.accuracy:.4f}}}"
    )


def timing_lines(summary: BatchSummary) -> List[str]:
    return [
        f"{TIMING_PREFIX}INIT:{summary.init_ms}ms",
        f"{TIMING_PREFIX}TOTAL_INFERENCE:{summary.total_inference_ms:.2f}ms",
        f"{TIMING_PREFIX}AVG_INFERENCE:{summary.avg_ms:.2f}ms",
        f"{TIMING_PREFIX}AVG_FPS:{summary.avg_fps:.2f}",
        f"{TIMING_PREFIX}BATCH_FPS:{summary.batch_fps:.2f}",
        f"{TIMING_PREFIX}SUCCESS_RATE:{summary.success_rate:.2f}%",
    ]


def progress_line(position: int, total: int, percent: float, succeeded: int, failed: int) -> str:
    return (
        f"[PROGRESS] {position}/{total} images processed ({percent:.1f}%)"
        f" - Success: {succeeded}, Failed: {failed}"
    )


def summary_lines(summary: BatchSummary) -> List[str]:
    heavy = "=" * RULE_WIDTH
    light = "-" * RULE_WIDTH
    return [
        heavy,
        "BENCHMARK RESULTS SUMMARY",
        heavy,
        f"Total images processed: {summary.total}",
        f"Successful: {summary.succeeded}",
        f"Failed: {summary.failed}",
        f"Success rate: {summary.success_rate:.1f}%",
        light,
        f"Initialization time: {summary.init_ms} ms",
        f"Total processing time: {summary.wall_ms} ms",
        f"Pure inference time: {summary.total_inference_ms:.2f} ms",
        light,
        f"Average inference time: {summary.avg_ms:.2f} ms",
        f"Median inference time: {summary.median_ms:.2f} ms",
        f"P95 inference time: {summary.p95_ms:.2f} ms",
        f"Min inference time: {summary.min_ms:.2f} ms",
        f"Max inference time: {summary.max_ms:.2f} ms",
        light,
        f"Average FPS (per image): {summary.avg_fps:.2f}",
        f"Batch throughput FPS: {summary.batch_fps:.2f}",
        f"Average characters/second: {summary.avg_chars_per_second:.2f}",
        f"Average character accuracy: {summary.avg_accuracy * 100:.2f}%",
        heavy,
    ]


def report_payload(report: BatchReport) -> Dict[str, object]:
    return {
        "images": [metric.to_dict() for metric in report.metrics],
        "failures": [
            {"path": str(failure.path), "reason": failure.reason}
            for failure in report.failures
        ],
        "summary": report.summary.to_dict() if report.summary else None,
    }


def markdown_table(report: BatchReport) -> str:
    lines = [
        "# OCR Benchmark Results",
        "",
        "| Filename | Inference (ms) | FPS | Chars/s | Accuracy (%) |",
        "|---|---:|---:|---:|---:|",
    ]
    for metric in report.metrics:
        lines.append(
            f"| `{metric.filename}` | {metric.inference_ms:.2f} | {metric.fps:.2f}"
            f" | **{metric.chars_per_second:.2f}** | **{metric.accuracy * 100:.2f}** |"
        )
    if report.metrics:
        count = len(report.metrics)
        avg_fps = sum(metric.fps for metric in report.metrics) / count
        avg_cps = sum(metric.chars_per_second for metric in report.metrics) / count
        avg_acc = sum(metric.accuracy for metric in report.metrics) / count * 100
        lines.append(f"| **Average** | - | **{avg_fps:.2f}** | **{avg_cps:.2f}** | **{avg_acc:.2f}** |")
    else:
        lines.append("")
        lines.append("**ERROR: No per-image results found to generate a table.**")
    if report.failures:
        lines.extend(["", "## Failed images", ""])
        lines.extend(f"- `{failure.path}`: {failure.reason}" for failure in report.failures)
    if report.summary:
        summary = report.summary
        lines.extend(
            [
                "",
                "## Summary",
                "",
                f"- Images: {summary.total} (success {summary.succeeded}, failed {summary.failed})",
                f"- Success rate: {summary.success_rate:.2f}%",
                f"- Initialization: {summary.init_ms} ms",
                f"- Total processing: {summary.wall_ms} ms",
                f"- Pure inference: {summary.total_inference_ms:.2f} ms",
                f"- Average inference: {summary.avg_ms:.2f} ms",
                f"- Average FPS (per image): {summary.avg_fps:.2f}",
                f"- Batch throughput FPS: {summary.batch_fps:.2f}",
            ]
        )
    return "\n".join(lines) + "\n"


def write_reports(report: BatchReport, directory: Path) -> List[Path]:
    directory.mkdir(parents=True, exist_ok=True)
    json_path = directory / "results.json"
    json_path.write_text(json.dumps(report_payload(report), indent=2), encoding="utf-8")
    markdown_path = directory / "results.md"
    markdown_path.write_text(markdown_table(report), encoding="utf-8")
    return [json_path, markdown_path]
