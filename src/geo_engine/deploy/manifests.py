"""
Deployment artifacts for tuned models.

Writes a Dockerfile, Kubernetes Deployment/Service manifests and the tuned
parameter file that the container's ``geo serve`` entrypoint reads.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..backends.base import GenerationParams
from ..core.config import (
    DeploymentConfig,
    ModelConfig,
    PostProcessingConfig,
    parse_cpu_quantity,
    parse_memory_quantity,
)

logger = logging.getLogger(__name__)

PARAMS_FILENAME = "geo_params.yaml"
CONTAINER_PARAMS_PATH = f"/app/{PARAMS_FILENAME}"
BASE_IMAGE = "python:3.11-slim"


def dns_label(name: str) -> str:
    """Sanitize a name into a DNS-1123 label (Kubernetes object names)."""
    label = re.sub(r"[^a-z0-9-]+", "-", name.lower())
    label = re.sub(r"-{2,}", "-", label)
    label = label[:63].strip("-")
    return label or "geo-model"


class DeploymentBuilder:
    """Builds deployment artifacts for one model and parameter set."""

    def __init__(
        self,
        config: DeploymentConfig,
        model_config: ModelConfig,
        params: Optional[Dict[str, Any]] = None,
        postprocessing: Optional[PostProcessingConfig] = None,
    ):
        # Fail early on quantities Kubernetes would reject
        parse_cpu_quantity(config.cpu)
        parse_memory_quantity(config.memory)
        if config.replicas < 1:
            raise ValueError(f"replicas must be >= 1 (got {config.replicas})")

        self.config = config
        self.model_config = model_config
        self.params = dict(params or GenerationParams().to_dict())
        self.postprocessing = postprocessing or PostProcessingConfig()

    @property
    def model_label(self) -> str:
        return self.model_config.name or Path(self.model_config.model_path or "").name

    @property
    def app_name(self) -> str:
        return dns_label(f"geo-{self.model_label.split('/')[-1]}")

    def params_document(self) -> Dict[str, Any]:
        """Model identity plus the tuned parameters, read by ``geo serve``."""
        return {
            "model": {
                "name": self.model_config.name,
                "version": self.model_config.version,
                "backend": self.model_config.backend.value,
                "model_path": self.model_config.model_path,
                "device": self.model_config.device,
                "dtype": self.model_config.dtype,
                "trust_remote_code": self.model_config.trust_remote_code,
            },
            "params": dict(self.params),
            "postprocessing": {
                "strip_whitespace": self.postprocessing.strip_whitespace,
                "stop_sequences": list(self.postprocessing.stop_sequences),
                "max_chars": self.postprocessing.max_chars,
                "collapse_whitespace": self.postprocessing.collapse_whitespace,
            },
        }

    def dockerfile(self, params_source: str = PARAMS_FILENAME) -> str:
        """
        Render the Dockerfile.

        Args:
            params_source: Path of the params file inside the build context
                (the project root)
        """
        extras = {
            "transformers": "[hf]",
            "openvino": "[openvino]",
        }.get(self.model_config.backend.value, "")
        port = self.config.port
        return "\n".join([
            "# Build from the project root: docker build -f <this file> .",
            f"FROM {BASE_IMAGE}",
            "",
            "WORKDIR /app",
            "COPY . /app/src",
            f"RUN pip install --no-cache-dir \"/app/src{extras}\"",
            f"COPY {params_source} {CONTAINER_PARAMS_PATH}",
            "",
            f"EXPOSE {port}",
            f"CMD [\"geo\", \"serve\", \"--params\", \"{CONTAINER_PARAMS_PATH}\", "
            f"\"--host\", \"0.0.0.0\", \"--port\", \"{port}\"]",
            "",
        ])

    def _resources(self) -> Dict[str, Dict[str, Any]]:
        requests: Dict[str, Any] = {"cpu": self.config.cpu, "memory": self.config.memory}
        limits: Dict[str, Any] = dict(requests)
        if self.config.gpu > 0:
            limits["nvidia.com/gpu"] = self.config.gpu
        return {"requests": requests, "limits": limits}

    def kubernetes_manifests(self) -> List[Dict[str, Any]]:
        name = self.app_name
        labels = {"app": name}

        deployment = {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": name, "namespace": self.config.namespace, "labels": labels},
            "spec": {
                "replicas": self.config.replicas,
                "selector": {"matchLabels": labels},
                "template": {
                    "metadata": {"labels": labels},
                    "spec": {
                        "containers": [{
                            "name": name,
                            "image": self.config.image,
                            "ports": [{"containerPort": self.config.port}],
                            "env": [
                                {"name": "GEO_MODEL_NAME", "value": self.model_label},
                                {"name": "GEO_MODEL_VERSION", "value": self.model_config.version},
                            ],
                            "resources": self._resources(),
                            "readinessProbe": {
                                "httpGet": {"path": "/health", "port": self.config.port},
                                "initialDelaySeconds": 10,
                            },
                        }],
                    },
                },
            },
        }

        service = {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": name, "namespace": self.config.namespace, "labels": labels},
            "spec": {
                "selector": labels,
                "ports": [{"port": 80, "targetPort": self.config.port}],
            },
        }

        return [deployment, service]

    def write(self, output_dir: Optional[str] = None) -> Dict[str, str]:
        """Write all artifacts and return their paths."""
        out = Path(output_dir or self.config.output_dir)
        out.mkdir(parents=True, exist_ok=True)

        paths = {
            "dockerfile": out / "Dockerfile",
            "kubernetes": out / "k8s.yaml",
            "params": out / PARAMS_FILENAME,
        }

        # COPY sources resolve against the build context (the working directory)
        params_source = Path(os.path.relpath(paths["params"])).as_posix()
        if params_source.startswith("../"):
            logger.warning(
                f"{paths['params']} is outside the build context {Path.cwd()}; "
                f"move it under the context before running docker build"
            )
        with open(paths["dockerfile"], "w") as f:
            f.write(self.dockerfile(params_source))

        with open(paths["kubernetes"], "w") as f:
            yaml.safe_dump_all(self.kubernetes_manifests(), f, sort_keys=False)

        with open(paths["params"], "w") as f:
            yaml.safe_dump(self.params_document(), f, sort_keys=False)

        logger.info(f"Deployment artifacts written to {out}")
        return {key: str(path) for key, path in paths.items()}
