"""Action Layer - Reconciliation and edit sessions."""

from pagepatch.layers.action.editor import EditController, EditState, MemoryEditor
from pagepatch.layers.action.reconciler import ReconcileResult, Reconciler

__all__ = ["EditController", "EditState", "MemoryEditor", "ReconcileResult", "Reconciler"]
