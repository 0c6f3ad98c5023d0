"""Naming template repository."""

from sqlalchemy import select

from db.models.library import NamingTemplate
from db.repositories.base import BaseRepository
from error_handler import ValidationError
from naming import DEFAULT_TEMPLATES, TEMPLATE_TYPES


class NamingTemplateRepository(BaseRepository):
    """Repository for naming_templates. One default per template type."""

    flag_columns = ("is_default",)

    def seed_defaults(self) -> int:
        """Insert the stock template for every type that has none."""
        existing = set(self.session.execute(select(NamingTemplate.template_type)).scalars().all())
        created = 0
        for template_type, (folder, file) in DEFAULT_TEMPLATES.items():
            if template_type in existing:
                continue
            self.session.add(NamingTemplate(
                template_type=template_type,
                folder_template=folder,
                file_template=file,
                is_default=1,
            ))
            created += 1
        if created:
            self._commit()
        return created

    def get_template(self, template_type: str) -> tuple[str, str]:
        """(folder_template, file_template) for a type, falling back to stock."""
        row = self.session.execute(
            select(NamingTemplate)
            .where(NamingTemplate.template_type == template_type)
            .order_by(NamingTemplate.is_default.desc(), NamingTemplate.id)
            .limit(1)
        ).scalar_one_or_none()
        if row is None:
            return DEFAULT_TEMPLATES[template_type]
        return row.folder_template, row.file_template

    def list_templates(self) -> list[dict]:
        rows = self.session.execute(select(NamingTemplate).order_by(NamingTemplate.template_type)).scalars().all()
        return [self._to_dict(r) for r in rows]

    def set_template(self, template_type: str, folder_template: str, file_template: str) -> dict:
        if template_type not in TEMPLATE_TYPES:
            raise ValidationError(f"Invalid template type: {template_type}")
        if not file_template:
            raise ValidationError("File template is required")
        row = self.session.execute(
            select(NamingTemplate)
            .where(NamingTemplate.template_type == template_type, NamingTemplate.is_default == 1)
            .limit(1)
        ).scalar_one_or_none()
        if row is None:
            row = NamingTemplate(template_type=template_type, is_default=1)
            self.session.add(row)
        row.folder_template = folder_template
        row.file_template = file_template
        self._commit()
        return self._to_dict(row)
