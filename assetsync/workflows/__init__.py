from ..task import WorkflowRegistry
from .create import CreateProjectWorkflow
from .download import DownloadWorkflow
from .importer import ImportWorkflow
from .refresh import RefreshWorkflow


def default_registry() -> WorkflowRegistry:
    """Registry with the refresh, download, import and create workflows."""
    registry = WorkflowRegistry()
    registry.add(RefreshWorkflow())
    registry.add(DownloadWorkflow())
    registry.add(ImportWorkflow())
    registry.add(CreateProjectWorkflow())
    return registry


__all__ = [
    "CreateProjectWorkflow",
    "DownloadWorkflow",
    "ImportWorkflow",
    "RefreshWorkflow",
    "default_registry",
]
