"""CLI orchestrator for auto_ops_guardrail with observability."""
from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence

from config import AppConfig
from intent_parser import LLMIntentExtractor
from logging_utils import logger, setup_logger
from models import Identity, RequestRecord
from pipeline import PipelineStores, RequestPipeline
from policy import Policy, load_policy
from security_utils import DisabledInjectionDetector, RegexInjectionDetector


class RequestLoadError(ValueError):
    """Raised when the request batch file is malformed."""


def load_requests(path: Path) -> List[RequestRecord]:
    """Load the request batch from a JSON array of {id, user_email, department, groups?, raw_text}."""
    with path.open("r", encoding="utf-8") as handle:
        try:
            raw_requests = json.load(handle)
        except json.JSONDecodeError as exc:
            raise RequestLoadError(f"Input file {path} is not valid JSON: {exc.msg}") from exc

    if not isinstance(raw_requests, list):
        raise RequestLoadError(f"Input file {path} must contain a JSON array of requests")

    requests: List[RequestRecord] = []
    for position, entry in enumerate(raw_requests):
        if not isinstance(entry, dict):
            raise RequestLoadError(f"Request at position {position} must be a JSON object")
        groups = entry.get("groups") or []
        if not isinstance(groups, list):
            raise RequestLoadError(f"Request at position {position} has non-list 'groups'")
        identity = Identity(
            email=str(entry.get("user_email", "")).strip(),
            department=str(entry.get("department", "")).strip(),
            groups=tuple(str(g).strip() for g in groups),
        )
        requests.append(
            RequestRecord(
                id=str(entry.get("id", f"req_{position + 1:03d}")),
                identity=identity,
                raw_text=str(entry.get("raw_text", "")),
            )
        )
    return requests


def build_pipeline(policy: Policy, config: AppConfig, extractor=None) -> RequestPipeline:
    """Wire the stores, detector and extractor into a pipeline for one run."""
    detector = RegexInjectionDetector() if config.security.enable_prompt_injection_detection else DisabledInjectionDetector()
    return RequestPipeline(
        policy=policy,
        extractor=extractor or LLMIntentExtractor(policy, config.llm),
        detector=detector,
        stores=PipelineStores.from_config(config),
        config=config,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="auto_ops_guardrail: turn natural-language IT requests into auditable decisions",
        epilog="Environment: OPENAI_API_KEY is required for intent extraction.",
    )
    parser.add_argument("-i", "--input", default="input.json", help="Path to input requests JSON (default: ./input.json)")
    parser.add_argument("-p", "--policy", default="policy.json", help="Path to policy JSON (default: ./policy.json)")
    parser.add_argument("-o", "--output", default=None, help="Path to write output JSON (default: stdout)")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    config = AppConfig.from_env()
    setup_logger(level=config.logging.log_level, json_format=config.logging.json_format, log_path=config.logging.log_path)

    if not config.llm.api_key:
        logger.error("OPENAI_API_KEY environment variable is required")
        return 1

    input_path = Path(args.input).resolve()
    policy_path = Path(args.policy).resolve()
    try:
        config.validate()
        policy = load_policy(policy_path)
        requests = load_requests(input_path)
    except (OSError, ValueError) as exc:
        logger.error("Startup failed", extra={"extra": {"error": str(exc)}})
        return 1

    logger.info(
        "Auto-ops guardrail starting",
        extra={"extra": {"input": str(input_path), "policy": str(policy_path), "count": len(requests)}},
    )

    start = time.time()
    pipeline = build_pipeline(policy, config)
    results = [decision.to_dict() for decision in pipeline.process_batch(requests)]
    total_latency_ms = int((time.time() - start) * 1000)
    logger.info("Completed batch", extra={"extra": {"total_latency_ms": total_latency_ms, "count": len(results)}})

    output = json.dumps(results, indent=2)
    if args.output:
        Path(args.output).write_text(output + "\n", encoding="utf-8")
        logger.info("Output written", extra={"extra": {"output": args.output}})
    else:
        print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
