# backend/talbiyah/services/template_service.py
"""
Template rendering service for the Talbiyah platform.

Renders the Jinja2 email templates shipped in ``talbiyah/templates``.
"""

from datetime import datetime
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, TemplateNotFound
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import BRAND_NAME
from .base import BaseService

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


class TemplateService(BaseService):
    """Centralized Jinja2 rendering with common brand context."""

    def __init__(self, db: Optional[Session] = None, template_dir: Optional[Path] = None):
        # Rendering never touches the database
        super().__init__(db)  # type: ignore[arg-type]
        self.template_dir = template_dir or TEMPLATE_DIR
        self.env = Environment(
            loader=FileSystemLoader(self.template_dir),
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._register_custom_filters()

    def _register_custom_filters(self) -> None:
        def credits(value: Any) -> str:
            """Format a credit amount: 1 -> '1 credit', 0.5 -> '0.5 credits'."""
            try:
                number = float(value)
            except (TypeError, ValueError):
                return str(value)
            text = f"{number:g}"
            return f"{text} credit" if number == 1 else f"{text} credits"

        self.env.filters["credits"] = credits

    def get_common_context(self) -> Dict[str, Any]:
        return {
            "brand_name": BRAND_NAME,
            "current_year": datetime.now().year,
            "frontend_url": settings.frontend_url,
            "support_email": settings.from_email,
        }

    @BaseService.measure_operation("render_template")
    def render_template(
        self, template_name: str, context: Optional[Dict[str, Any]] = None, **kwargs: Any
    ) -> str:
        """
        Render a template with the given context.

        Args:
            template_name: Path to template relative to templates directory
            context: Dictionary of template variables
            **kwargs: Additional template variables

        Raises:
            TemplateNotFound: If template doesn't exist
        """
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound:
            self.logger.error(f"Template not found: {template_name}")
            raise
        full_context = self.get_common_context()
        if context:
            full_context.update(context)
        full_context.update(kwargs)
        return template.render(full_context)

    def template_exists(self, template_name: str) -> bool:
        try:
            self.env.get_template(template_name)
            return True
        except TemplateNotFound:
            return False
