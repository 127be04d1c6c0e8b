"""Rendered manifest validation.

Checks rendered documents for problems a cluster would reject or that
usually indicate a broken template:
- YAML syntax
- Required resource fields (apiVersion, kind, metadata.name)
- Deployment structure (selector, containers, images)
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import yaml

from helmlet.engine import RenderedDocument

logger = logging.getLogger(__name__)


class Severity(Enum):
    """Issue severity."""

    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationIssue:
    """Single validation finding.

    Attributes:
        severity: Error or warning
        message: Human readable description
        source: Template the document was rendered from
        field_path: Dotted path of the offending field
    """

    severity: Severity
    message: str
    source: str | None = None
    field_path: str | None = None

    def __str__(self) -> str:
        location = self.source or "<manifest>"
        if self.field_path:
            location = f"{location} ({self.field_path})"
        return f"[{self.severity.value}] {location}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "severity": self.severity.value,
            "message": self.message,
            "source": self.source,
            "field": self.field_path,
        }


@dataclass
class ValidationResult:
    """Outcome of validating one or more documents."""

    issues: list[ValidationIssue] = field(default_factory=list)
    documents_checked: int = 0

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def extend(self, other: "ValidationResult") -> None:
        self.issues.extend(other.issues)
        self.documents_checked += other.documents_checked

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "valid": self.is_valid,
            "documents_checked": self.documents_checked,
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "issues": [i.to_dict() for i in self.issues],
        }


class ManifestValidator:
    """Validates rendered Kubernetes manifests."""

    # Fields every Kubernetes resource must carry
    REQUIRED_FIELDS = [
        "apiVersion",
        "kind",
        "metadata.name",
    ]

    DEPLOYMENT_REQUIRED_FIELDS = [
        "spec.selector.matchLabels",
        "spec.template.metadata.labels",
        "spec.template.spec.containers",
    ]

    def validate_text(self, text: str, source: str | None = None) -> ValidationResult:
        """Validate a (possibly multi-document) YAML string.

        Args:
            text: Rendered manifest text
            source: Template name used in issue locations

        Returns:
            ValidationResult
        """
        result = ValidationResult()
        try:
            documents = [d for d in yaml.safe_load_all(text) if d is not None]
        except yaml.YAMLError as e:
            result.issues.append(
                ValidationIssue(Severity.ERROR, f"invalid YAML: {e}", source=source)
            )
            return result

        for data in documents:
            result.documents_checked += 1
            result.issues.extend(self._validate_resource(data, source))
        return result

    def validate_document(self, document: RenderedDocument) -> ValidationResult:
        """Validate one rendered document."""
        return self.validate_text(document.text, source=document.source)

    def validate_all(self, documents: Mapping[str, RenderedDocument]) -> ValidationResult:
        """Validate every document of a chart render."""
        result = ValidationResult()
        for document in documents.values():
            result.extend(self.validate_document(document))
        logger.debug(
            "Validated %d document(s): %d error(s), %d warning(s)",
            result.documents_checked,
            len(result.errors),
            len(result.warnings),
        )
        return result

    def _validate_resource(self, data: Any, source: str | None) -> list[ValidationIssue]:
        if not isinstance(data, dict):
            return [
                ValidationIssue(
                    Severity.ERROR,
                    f"document must be a mapping, got {type(data).__name__}",
                    source=source,
                )
            ]

        issues = []
        for field_path in self.REQUIRED_FIELDS:
            if self._get_nested_field(data, field_path) in (None, ""):
                issues.append(
                    ValidationIssue(
                        Severity.ERROR,
                        "missing required field",
                        source=source,
                        field_path=field_path,
                    )
                )

        if data.get("kind") == "Deployment":
            issues.extend(self._validate_deployment(data, source))
        return issues

    def _validate_deployment(self, data: dict[str, Any], source: str | None) -> list[ValidationIssue]:
        issues = []

        for field_path in self.DEPLOYMENT_REQUIRED_FIELDS:
            if not self._get_nested_field(data, field_path):
                issues.append(
                    ValidationIssue(
                        Severity.ERROR,
                        "missing required field",
                        source=source,
                        field_path=field_path,
                    )
                )

        replicas = self._get_nested_field(data, "spec.replicas")
        if replicas is not None and (not isinstance(replicas, int) or isinstance(replicas, bool)):
            issues.append(
                ValidationIssue(
                    Severity.ERROR,
                    f"replicas must be an integer, got {replicas!r}",
                    source=source,
                    field_path="spec.replicas",
                )
            )

        selector = self._get_nested_field(data, "spec.selector.matchLabels")
        labels = self._get_nested_field(data, "spec.template.metadata.labels")
        if isinstance(selector, dict) and isinstance(labels, dict):
            for key, value in selector.items():
                if labels.get(key) != value:
                    issues.append(
                        ValidationIssue(
                            Severity.ERROR,
                            f"selector label {key}={value} does not match the pod template labels",
                            source=source,
                            field_path="spec.selector.matchLabels",
                        )
                    )

        containers = self._get_nested_field(data, "spec.template.spec.containers")
        if isinstance(containers, list):
            for index, container in enumerate(containers):
                issues.extend(self._validate_container(container, index, source))
        elif containers is not None:
            issues.append(
                ValidationIssue(
                    Severity.ERROR,
                    "containers must be a list",
                    source=source,
                    field_path="spec.template.spec.containers",
                )
            )

        return issues

    def _validate_container(self, container: Any, index: int, source: str | None) -> list[ValidationIssue]:
        prefix = f"spec.template.spec.containers[{index}]"
        if not isinstance(container, dict):
            return [ValidationIssue(Severity.ERROR, "container must be a mapping", source=source, field_path=prefix)]

        issues = []
        for key in ("name", "image"):
            if not container.get(key):
                issues.append(
                    ValidationIssue(
                        Severity.ERROR,
                        "missing required field",
                        source=source,
                        field_path=f"{prefix}.{key}",
                    )
                )

        image = container.get("image")
        if isinstance(image, str) and image:
            repository, _, tag = image.rpartition(":")
            if not repository or "/" in tag or not tag:
                issues.append(
                    ValidationIssue(
                        Severity.WARNING,
                        f"image {image!r} has no tag",
                        source=source,
                        field_path=f"{prefix}.image",
                    )
                )
            elif tag == "latest":
                issues.append(
                    ValidationIssue(
                        Severity.WARNING,
                        f"image {image!r} uses the latest tag",
                        source=source,
                        field_path=f"{prefix}.image",
                    )
                )

        for env_index, env in enumerate(container.get("env") or []):
            secret_ref = self._get_nested_field(env, "valueFrom.secretKeyRef") if isinstance(env, dict) else None
            if isinstance(secret_ref, dict):
                for key in ("name", "key"):
                    if not secret_ref.get(key):
                        issues.append(
                            ValidationIssue(
                                Severity.ERROR,
                                "missing required field",
                                source=source,
                                field_path=f"{prefix}.env[{env_index}].valueFrom.secretKeyRef.{key}",
                            )
                        )

        if not container.get("resources"):
            issues.append(
                ValidationIssue(
                    Severity.WARNING,
                    "no resource requests or limits set",
                    source=source,
                    field_path=f"{prefix}.resources",
                )
            )

        return issues

    def _get_nested_field(self, data: Any, field_path: str) -> Any:
        """Get a nested field value using dot notation."""
        current = data
        for key in field_path.split("."):
            if not isinstance(current, dict) or key not in current:
                return None
            current = current[key]
        return current
