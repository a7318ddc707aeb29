"""lifecycle_initial_schema

Creates the project lifecycle schema:
  - projects, project_phases
  - project_resources, project_tech_stack
  - project_environments, deployment_history
  - task_columns, tasks, task_tags, checklist_items, task_comments, task_dependencies
  - bug_reports, uat_feedback, project_signoffs
  - design_reviews
  - audit_logs (no FK to projects; audit rows outlive the project)

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: 5e1f0a7c2b31
Revises:
Create Date: 2026-10-17 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5e1f0a7c2b31"
down_revision = None
branch_labels = None
depends_on = None


def _project_fk():
    return sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE")


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Project root ─────────────────────────────────────────────────────
    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("key", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="planning"),
            sa.Column("manager_id", sa.Integer(), nullable=True),
            sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("key", name="uq_projects_key"),
        )

    if "project_phases" not in existing:
        op.create_table(
            "project_phases",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("phase_type", sa.String(length=30), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            _ts("started_at"),
            _ts("completed_at"),
            sa.Column("blocked_reason", sa.Text(), nullable=True),
            _ts("created_at"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "phase_type", name="uq_phase_project_type"),
        )
        op.create_index("ix_project_phases_project_id", "project_phases", ["project_id"])

    # ── Resources & tech stack ───────────────────────────────────────────
    if "project_resources" not in existing:
        op.create_table(
            "project_resources",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("file_path", sa.String(length=500), nullable=True),
            sa.Column("url", sa.String(length=500), nullable=True),
            sa.Column("encrypted_data", sa.Text(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("approved_by", sa.Integer(), nullable=True),
            _ts("approved_at"),
            _ts("created_at"),
            _ts("updated_at"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_resources_project_id", "project_resources", ["project_id"])

    if "project_tech_stack" not in existing:
        op.create_table(
            "project_tech_stack",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("category", sa.String(length=20), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("version", sa.String(length=50), nullable=True),
            sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("locked_at"),
            sa.Column("locked_by", sa.String(length=100), nullable=True),
            _ts("created_at"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_tech_stack_project_id", "project_tech_stack", ["project_id"])

    # ── Environments ─────────────────────────────────────────────────────
    if "project_environments" not in existing:
        op.create_table(
            "project_environments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("env_type", sa.String(length=20), nullable=False),
            sa.Column("url", sa.String(length=500), nullable=True),
            sa.Column("current_version", sa.String(length=50), nullable=True),
            sa.Column("ssl_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("last_deployed_at"),
            sa.Column("last_deployed_by", sa.String(length=100), nullable=True),
            _ts("created_at"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "env_type", name="uq_environment_project_type"),
        )
        op.create_index("ix_project_environments_project_id", "project_environments", ["project_id"])

    if "deployment_history" not in existing:
        op.create_table(
            "deployment_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("environment_id", sa.Integer(), nullable=False),
            sa.Column("version", sa.String(length=50), nullable=False),
            sa.Column("deployed_by", sa.String(length=100), nullable=False),
            _ts("deployed_at", nullable=False),
            sa.Column("commit_hash", sa.String(length=64), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="success"),
            sa.ForeignKeyConstraint(["environment_id"], ["project_environments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_deployment_history_environment_id", "deployment_history", ["environment_id"])

    # ── Task board ───────────────────────────────────────────────────────
    if "task_columns" not in existing:
        op.create_table(
            "task_columns",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_task_columns_project_id", "task_columns", ["project_id"])

    if "tasks" not in existing:
        op.create_table(
            "tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("column_id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=20), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("assignee_id", sa.Integer(), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            _ts("created_at"),
            _ts("updated_at"),
            _project_fk(),
            sa.ForeignKeyConstraint(["column_id"], ["task_columns.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
        op.create_index("ix_tasks_column_id", "tasks", ["column_id"])

    task_children = {
        "task_tags": [sa.Column("name", sa.String(length=50), nullable=False)],
        "checklist_items": [
            sa.Column("text", sa.String(length=500), nullable=False),
            sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        ],
    }
    for table_name, columns in task_children.items():
        if table_name in existing:
            continue
        op.create_table(
            table_name,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            *columns,
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table_name}_task_id", table_name, ["task_id"])

    if "task_comments" not in existing:
        op.create_table(
            "task_comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("parent_id", sa.Integer(), nullable=True),
            sa.Column("author_id", sa.Integer(), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_id"], ["task_comments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_task_comments_task_id", "task_comments", ["task_id"])

    if "task_dependencies" not in existing:
        op.create_table(
            "task_dependencies",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("depends_on_task_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["depends_on_task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("task_id", "depends_on_task_id", name="uq_task_dependency"),
        )
        op.create_index("ix_task_dependencies_task_id", "task_dependencies", ["task_id"])
        op.create_index("ix_task_dependencies_depends_on_task_id", "task_dependencies",
                        ["depends_on_task_id"])

    # ── Testing & UAT ────────────────────────────────────────────────────
    if "bug_reports" not in existing:
        op.create_table(
            "bug_reports",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
            sa.Column("environment", sa.String(length=20), nullable=True),
            sa.Column("reproduction_steps", sa.Text(), nullable=True),
            sa.Column("reported_by", sa.Integer(), nullable=True),
            sa.Column("assigned_to", sa.Integer(), nullable=True),
            _ts("resolved_at"),
            _ts("created_at"),
            _project_fk(),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_bug_reports_project_id", "bug_reports", ["project_id"])

    if "uat_feedback" not in existing:
        op.create_table(
            "uat_feedback",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("feature_name", sa.String(length=200), nullable=True),
            sa.Column("page_url", sa.String(length=500), nullable=True),
            sa.Column("feedback_text", sa.Text(), nullable=False),
            sa.Column("provided_by", sa.String(length=200), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            _ts("addressed_at"),
            _ts("created_at"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_uat_feedback_project_id", "uat_feedback", ["project_id"])

    if "project_signoffs" not in existing:
        op.create_table(
            "project_signoffs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("signoff_type", sa.String(length=20), nullable=False),
            sa.Column("approver_name", sa.String(length=200), nullable=False),
            sa.Column("approver_email", sa.String(length=200), nullable=True),
            sa.Column("signature_data", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            _ts("signed_at", nullable=False),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_signoffs_project_id", "project_signoffs", ["project_id"])
        op.create_index(
            "uq_project_signoffs_uat", "project_signoffs", ["project_id"], unique=True,
            sqlite_where=sa.text("signoff_type = 'uat'"),
            postgresql_where=sa.text("signoff_type = 'uat'"),
        )

    # ── Design reviews ───────────────────────────────────────────────────
    if "design_reviews" not in existing:
        op.create_table(
            "design_reviews",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("resource_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("reviewer_id", sa.Integer(), nullable=True),
            _ts("reviewed_at"),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("version_locked", sa.Integer(), nullable=True),
            _ts("created_at"),
            _project_fk(),
            sa.ForeignKeyConstraint(["resource_id"], ["project_resources.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_design_reviews_project_id", "design_reviews", ["project_id"])
        op.create_index("ix_design_reviews_resource_id", "design_reviews", ["resource_id"])
        op.create_index(
            "uq_design_reviews_pending", "design_reviews", ["resource_id"], unique=True,
            sqlite_where=sa.text("status = 'pending'"),
            postgresql_where=sa.text("status = 'pending'"),
        )

    # ── Audit ────────────────────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("diff_json", sa.Text(), nullable=True),
            _ts("timestamp", nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_project", "audit_logs", ["project_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])


def downgrade():
    for table_name in (
        "audit_logs",
        "project_signoffs",
        "design_reviews",
        "uat_feedback",
        "bug_reports",
        "task_dependencies",
        "task_comments",
        "checklist_items",
        "task_tags",
        "tasks",
        "task_columns",
        "deployment_history",
        "project_environments",
        "project_tech_stack",
        "project_resources",
        "project_phases",
        "projects",
    ):
        op.drop_table(table_name)
