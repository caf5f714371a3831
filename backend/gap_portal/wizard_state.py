"""Client-side state of the multi-step application forms.

:class:`StepWizard` tracks which step the applicant is on, which steps are
complete and the values entered so far.  Values are validated one step at a
time with the schemas in :mod:`gap_portal.models.step_schemas`; nothing is
required until final submission.

:class:`DraftStore` keeps a local JSON snapshot per form type so an
interrupted session can be resumed.  The snapshot is overwritten on every
save and removed after a successful submit.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type

from gap_portal.models.step_schemas import (
    PROPOSAL_TOTAL_STEPS,
    STEP_SCHEMAS,
    StepModel,
    validate_values,
)
from gap_portal.services.application_service import validate_for_submission

logger = logging.getLogger(__name__)

PROPOSAL_FORM = "proposalFormData"
CONCEPT_FORM = "conceptFormData"
CONCEPT_TOTAL_STEPS = 5


class StepValidationError(ValueError):
    """A step (or the full record) failed validation."""

    def __init__(self, step: Optional[int], errors: Dict[str, str]) -> None:
        where = f"Step {step}" if step is not None else "Application"
        super().__init__(f"{where} is invalid: " + "; ".join(errors.values()))
        self.step = step
        self.errors = errors


# =============================================================================
# Draft persistence
# =============================================================================


class DraftStore:
    """One JSON file per form type under ``directory``."""

    def __init__(self, directory: os.PathLike | str) -> None:
        self.directory = Path(directory)

    def path_for(self, form_type: str) -> Path:
        return self.directory / f"{form_type}.json"

    def save(self, form_type: str, snapshot: Mapping[str, Any]) -> Path:
        """Overwrite the draft for ``form_type``; the write is atomic."""
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.path_for(form_type)
        payload = dict(snapshot)
        payload["savedAt"] = datetime.now(timezone.utc).isoformat()

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, default=str)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Draft %s saved to %s", form_type, target)
        return target

    def load(self, form_type: str) -> Optional[Dict[str, Any]]:
        """The saved draft, or None if there is none or it is unreadable."""
        path = self.path_for(form_type)
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Discarding unreadable draft %s: %s", path, e)
            return None
        return data if isinstance(data, dict) else None

    def clear(self, form_type: str) -> None:
        path = self.path_for(form_type)
        if path.exists():
            path.unlink()
            logger.info("Draft %s cleared", form_type)


# =============================================================================
# Wizard
# =============================================================================


class StepWizard:
    """Position, completion and values of one multi-step form.

    Args:
        total_steps: Number of steps (9 for the proposal form).
        form_type: Draft key, e.g. ``"conceptFormData"``.
        draft_store: Where drafts are kept; drafts are disabled when None.
        step_schemas: Per-step validation models; steps without one accept
            anything.
    """

    def __init__(
        self,
        total_steps: int = PROPOSAL_TOTAL_STEPS,
        form_type: str = PROPOSAL_FORM,
        draft_store: Optional[DraftStore] = None,
        step_schemas: Optional[Mapping[int, Type[StepModel]]] = None,
    ) -> None:
        if total_steps < 1:
            raise ValueError("A wizard needs at least one step")
        self.total_steps = total_steps
        self.form_type = form_type
        self.draft_store = draft_store
        self.step_schemas = dict(STEP_SCHEMAS if step_schemas is None else step_schemas)
        self.current_step = 1
        self.completed_steps: List[int] = []
        self.values: Dict[str, Any] = {}

    @classmethod
    def for_concept(cls, draft_store: Optional[DraftStore] = None) -> "StepWizard":
        return cls(CONCEPT_TOTAL_STEPS, CONCEPT_FORM, draft_store, step_schemas={})

    # -- navigation ---------------------------------------------------------

    def _check_step(self, step: int) -> int:
        if not 1 <= step <= self.total_steps:
            raise ValueError(f"Step must be between 1 and {self.total_steps}, got {step}")
        return step

    def go_to(self, step: int) -> int:
        self.current_step = self._check_step(step)
        return self.current_step

    def next(self) -> int:
        """Complete the current step (validating it) and move forward."""
        self.complete_step()
        if self.current_step < self.total_steps:
            self.current_step += 1
        return self.current_step

    def back(self) -> int:
        if self.current_step > 1:
            self.current_step -= 1
        return self.current_step

    @property
    def is_last_step(self) -> bool:
        return self.current_step == self.total_steps

    @property
    def is_complete(self) -> bool:
        return len(self.completed_steps) == self.total_steps

    # -- values -------------------------------------------------------------

    def update(self, values: Optional[Mapping[str, Any]] = None, **fields: Any) -> None:
        if values:
            self.values.update(values)
        self.values.update(fields)

    def step_values(self, step: Optional[int] = None) -> Dict[str, Any]:
        """Values owned by ``step`` (all values when the step has no schema)."""
        step = self._check_step(step or self.current_step)
        schema = self.step_schemas.get(step)
        if schema is None:
            return dict(self.values)
        keys = {f.alias or name for name, f in schema.model_fields.items()}
        return {k: v for k, v in self.values.items() if k in keys}

    # -- validation ---------------------------------------------------------

    def validate_step(self, step: Optional[int] = None) -> Dict[str, str]:
        step = self._check_step(step or self.current_step)
        if step not in self.step_schemas:
            return {}
        return validate_values(self.step_schemas[step], self.step_values(step))

    def complete_step(self, step: Optional[int] = None) -> None:
        step = self._check_step(step or self.current_step)
        errors = self.validate_step(step)
        if errors:
            raise StepValidationError(step, errors)
        if step not in self.completed_steps:
            self.completed_steps = sorted(self.completed_steps + [step])

    def validate_all(self) -> Dict[str, str]:
        """Per-step checks plus the required fields of a final submission."""
        errors: Dict[str, str] = {}
        for step in range(1, self.total_steps + 1):
            for key, message in self.validate_step(step).items():
                errors.setdefault(key, message)
        if self.form_type == PROPOSAL_FORM:
            for key, message in validate_for_submission(self.values).items():
                errors.setdefault(key, message)
        return errors

    # -- persistence --------------------------------------------------------

    def progress_payload(self) -> Dict[str, Any]:
        """Body of ``PUT /applications/{id}/progress`` for the current step."""
        return {
            "currentStep": self.current_step,
            "completedSteps": list(self.completed_steps),
            "stepData": self.step_values(),
        }

    def snapshot(self) -> Dict[str, Any]:
        return {
            "formType": self.form_type,
            "currentStep": self.current_step,
            "completedSteps": list(self.completed_steps),
            "values": dict(self.values),
        }

    def restore(self, snapshot: Mapping[str, Any]) -> None:
        """Load a snapshot, dropping step numbers outside this wizard."""
        self.values = dict(snapshot.get("values") or {})
        steps = snapshot.get("completedSteps") or []
        self.completed_steps = sorted(
            {s for s in steps if isinstance(s, int) and 1 <= s <= self.total_steps}
        )
        current = snapshot.get("currentStep") or 1
        self.current_step = current if 1 <= current <= self.total_steps else 1

    def save_draft(self) -> Optional[Path]:
        if self.draft_store is None:
            return None
        return self.draft_store.save(self.form_type, self.snapshot())

    def load_draft(self) -> bool:
        """Restore the saved draft; False when there is none."""
        if self.draft_store is None:
            return False
        snapshot = self.draft_store.load(self.form_type)
        if snapshot is None:
            return False
        self.restore(snapshot)
        logger.info(
            "Restored %s draft at step %d/%d",
            self.form_type,
            self.current_step,
            self.total_steps,
        )
        return True

    def clear_draft(self) -> None:
        if self.draft_store is not None:
            self.draft_store.clear(self.form_type)
