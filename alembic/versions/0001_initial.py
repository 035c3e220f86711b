"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "templates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("current_version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "kind IN ('appraisal', 'supervisor-feedback', 'student-feedback')",
            name="ck_template_kind",
        ),
        sa.CheckConstraint("current_version >= 1", name="ck_template_current_version"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_templates_kind", "templates", ["kind"], unique=False)

    op.create_table(
        "template_versions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("template_id", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("version >= 1", name="ck_template_version_positive"),
        sa.ForeignKeyConstraint(["template_id"], ["templates.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("template_id", "version", name="uq_template_version"),
    )
    op.create_index(
        "ix_template_versions_template_id", "template_versions", ["template_id"], unique=False
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "questions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "version_categories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["version_id"], ["template_versions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("version_id", "category_id", name="uq_version_category"),
        sa.UniqueConstraint("version_id", "display_order", name="uq_version_display_order"),
    )
    op.create_index(
        "ix_version_categories_version_id", "version_categories", ["version_id"], unique=False
    )

    op.create_table(
        "version_questions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("question_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["version_id"], ["template_versions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["question_id"], ["questions.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("version_id", "question_id", name="uq_version_question"),
    )
    op.create_index(
        "ix_version_questions_version_id", "version_questions", ["version_id"], unique=False
    )

    op.create_table(
        "subjects",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("student_name", sa.String(length=255), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("company_address", sa.Text(), nullable=True),
        sa.Column("supervisor_name", sa.String(length=255), nullable=True),
        sa.Column("supervisor_email", sa.String(length=255), nullable=True),
        sa.Column("program_name", sa.String(length=255), nullable=True),
        sa.Column("department_name", sa.String(length=255), nullable=True),
        sa.Column("semester", sa.String(length=64), nullable=True),
        sa.Column("year_level", sa.String(length=64), nullable=True),
        sa.Column("total_ojt_hours", sa.Float(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "access_grants",
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("template_id", sa.Integer(), nullable=False),
        sa.Column("bound_version", sa.Integer(), nullable=False),
        sa.Column("respondent_role", sa.String(length=64), nullable=False),
        sa.Column("recipient", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("issued_by", sa.String(length=255), nullable=True),
        sa.Column("issued_at", sa.DateTime(), nullable=False),
        sa.Column("consumed_at", sa.DateTime(), nullable=True),
        sa.Column("expired_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'consumed', 'expired')", name="ck_grant_status"),
        sa.ForeignKeyConstraint(["subject_id"], ["subjects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["template_id"], ["templates.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("code"),
    )
    op.create_index("ix_access_grants_subject_id", "access_grants", ["subject_id"], unique=False)
    op.create_index("ix_access_grants_template_id", "access_grants", ["template_id"], unique=False)

    op.create_table(
        "responses",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("grant_code", sa.String(length=64), nullable=False),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("template_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("bound_version", sa.Integer(), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("other_comments", sa.Text(), nullable=True),
        sa.Column("signature_ref", sa.String(length=512), nullable=False),
        sa.Column("total_points", sa.Integer(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["grant_code"], ["access_grants.code"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["subject_id"], ["subjects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["template_id"], ["templates.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("grant_code"),
    )
    op.create_index("ix_responses_subject_id", "responses", ["subject_id"], unique=False)
    op.create_index("ix_responses_template_id", "responses", ["template_id"], unique=False)
    op.create_index("ix_responses_submitted_at", "responses", ["submitted_at"], unique=False)

    op.create_table(
        "response_answers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("response_id", sa.Integer(), nullable=False),
        sa.Column("question_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("choice", sa.String(length=2), nullable=True),
        sa.CheckConstraint(
            "(rating IS NULL OR (rating BETWEEN 1 AND 5)) "
            "AND (choice IS NULL OR choice IN ('SA', 'A', 'N', 'D', 'SD')) "
            "AND (rating IS NULL OR choice IS NULL)",
            name="ck_answer_value",
        ),
        sa.ForeignKeyConstraint(["response_id"], ["responses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["question_id"], ["questions.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("response_id", "question_id", name="uq_response_question"),
    )
    op.create_index(
        "ix_response_answers_response_id", "response_answers", ["response_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_response_answers_response_id", table_name="response_answers")
    op.drop_table("response_answers")
    op.drop_index("ix_responses_submitted_at", table_name="responses")
    op.drop_index("ix_responses_template_id", table_name="responses")
    op.drop_index("ix_responses_subject_id", table_name="responses")
    op.drop_table("responses")
    op.drop_index("ix_access_grants_template_id", table_name="access_grants")
    op.drop_index("ix_access_grants_subject_id", table_name="access_grants")
    op.drop_table("access_grants")
    op.drop_table("subjects")
    op.drop_index("ix_version_questions_version_id", table_name="version_questions")
    op.drop_table("version_questions")
    op.drop_index("ix_version_categories_version_id", table_name="version_categories")
    op.drop_table("version_categories")
    op.drop_table("questions")
    op.drop_table("categories")
    op.drop_index("ix_template_versions_template_id", table_name="template_versions")
    op.drop_table("template_versions")
    op.drop_index("ix_templates_kind", table_name="templates")
    op.drop_table("templates")
