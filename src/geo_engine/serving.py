"""
JSON-over-HTTP generation server.

Container entrypoint for deployed models: loads the tuned parameter file
written by the deployment stage and answers ``POST /generate`` requests.
"""

import logging
import threading
import time
from dataclasses import fields, replace
from typing import Any, Dict, List, Optional, Tuple

import yaml
from flask import Flask, jsonify, request

from .backends import create_backend
from .backends.base import BaseBackend, GenerationParams
from .core.config import BackendType, ModelConfig, PostProcessingConfig
from .core.postprocessing import PostProcessor

logger = logging.getLogger(__name__)


def load_params_document(
    path: str,
) -> Tuple[ModelConfig, GenerationParams, Dict[str, Any], PostProcessingConfig]:
    """Read a ``geo_params.yaml`` file written by the deployment stage."""
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    model_data = data.get("model", {}) or {}
    if not model_data.get("name") and not model_data.get("model_path"):
        raise ValueError(f"Params file has no model name or model path: {path}")

    model_config = ModelConfig(
        name=model_data.get("name") or "",
        version=str(model_data.get("version", "main")),
        backend=BackendType(model_data.get("backend", "transformers")),
        model_path=model_data.get("model_path"),
        device=model_data.get("device", "cpu"),
        dtype=model_data.get("dtype", "float32"),
        trust_remote_code=bool(model_data.get("trust_remote_code", False)),
    )
    params, runtime_options = GenerationParams.split(data.get("params", {}) or {})

    post_data = data.get("postprocessing", {}) or {}
    postprocessing = PostProcessingConfig(
        strip_whitespace=post_data.get("strip_whitespace", True),
        stop_sequences=list(post_data.get("stop_sequences", [])),
        max_chars=post_data.get("max_chars", 0),
        collapse_whitespace=post_data.get("collapse_whitespace", False),
    )
    return model_config, params, runtime_options, postprocessing


def coerce_overrides(overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check per-request overrides against the GenerationParams field types.

    Unknown keys are dropped. Ints are accepted for float fields; anything
    else of the wrong type raises ValueError.
    """
    types = {f.name: f.type for f in fields(GenerationParams)}
    coerced: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in types:
            continue
        expected = types[key]
        if expected in (bool, "bool"):
            ok = isinstance(value, bool)
        elif expected in (int, "int"):
            ok = isinstance(value, int) and not isinstance(value, bool)
        else:
            ok = isinstance(value, (int, float)) and not isinstance(value, bool)
            if ok:
                value = float(value)
        if not ok:
            raise ValueError(f"Invalid value for '{key}': {value!r}")
        coerced[key] = value

    for key in ("max_new_tokens", "num_beams"):
        if key in coerced and coerced[key] < 1:
            raise ValueError(f"'{key}' must be >= 1")
    return coerced


class GenerationService:
    """Thread-safe wrapper around a backend with fixed tuned parameters."""

    def __init__(
        self,
        backend: BaseBackend,
        params: GenerationParams,
        postprocessor: Optional[PostProcessor] = None,
        model_name: str = "",
    ):
        self.backend = backend
        self.params = params
        self.postprocessor = postprocessor or PostProcessor()
        self.model_name = model_name or backend.model_path
        self._lock = threading.Lock()

    def generate(self, prompts: List[str], overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = self.params
        if overrides:
            params = replace(params, **coerce_overrides(overrides))
        params = replace(params, batch_size=len(prompts))

        start = time.perf_counter()
        with self._lock:
            output = self.backend.generate(prompts, params)
        elapsed = time.perf_counter() - start

        return {
            "texts": self.postprocessor.process_batch(output.texts),
            "generated_tokens": output.generated_tokens,
            "latency_ms": elapsed * 1000.0,
        }


def _parse_prompts(body: Dict[str, Any]) -> List[str]:
    if "prompts" in body:
        prompts = body["prompts"]
        if not isinstance(prompts, list) or not prompts or \
                not all(isinstance(p, str) for p in prompts):
            raise ValueError("'prompts' must be a non-empty list of strings")
        return prompts
    if isinstance(body.get("prompt"), str):
        return [body["prompt"]]
    raise ValueError("Request needs 'prompt' or 'prompts'")


def create_app(service: GenerationService) -> Flask:
    """Build the Flask app exposing ``/health`` and ``/generate``."""
    app = Flask(__name__)

    @app.route("/health", methods=["GET"])
    def health_check():
        return jsonify({"status": "ok", "model": service.model_name})

    @app.route("/generate", methods=["POST"])
    def generate():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400

        try:
            prompts = _parse_prompts(body)
            overrides = body.get("params") or {}
            if not isinstance(overrides, dict):
                raise ValueError("'params' must be an object")
            overrides = coerce_overrides(overrides)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        try:
            result = service.generate(prompts, overrides)
        except Exception as e:
            logger.exception("Generation failed")
            return jsonify({"error": str(e)}), 500

        return jsonify(result)

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": f"Not found: {request.path}"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": f"Method not allowed: {request.method} {request.path}"}), 405

    return app


def serve(params_path: str, host: str = "0.0.0.0", port: int = 8080) -> None:
    """Load the model described by a params file and serve it until interrupted."""
    model_config, params, runtime_options, postprocessing = load_params_document(params_path)

    backend = create_backend(model_config)
    backend.apply_runtime_options(runtime_options)
    backend.load()

    label = model_config.name or str(model_config.model_path)
    service = GenerationService(
        backend, params, PostProcessor(postprocessing), model_name=label
    )
    app = create_app(service)
    logger.info(f"Serving {label} on http://{host}:{port}")
    app.run(host=host, port=port, threaded=True)
