"""Application services."""

from labelcatalog.application.services.attribution_service import AttributionService
from labelcatalog.application.services.label_import_service import LabelImportService

__all__ = ["AttributionService", "LabelImportService"]
