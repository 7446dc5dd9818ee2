"""initial portal tables

Revision ID: 20261019_0001
Revises: 
Create Date: 2026-10-19 00:01:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261019_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'classes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False, unique=True),
        sa.Column('campus', sa.String(length=80), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_classes_id', 'classes', ['id'])
    op.create_index('ix_classes_campus', 'classes', ['campus'])

    op.create_table(
        'admin_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('auth_user_id', sa.String(length=64), nullable=False, unique=True),
        sa.Column('name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_admin_profiles_auth_user_id', 'admin_profiles', ['auth_user_id'])

    op.create_table(
        'teachers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('auth_user_id', sa.String(length=64), nullable=False, unique=True),
        sa.Column('name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('email', sa.String(length=160), nullable=False, server_default=''),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='teacher'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_teachers_auth_user_id', 'teachers', ['auth_user_id'])
    op.create_index('ix_teachers_email', 'teachers', ['email'])

    op.create_table(
        'teacher_classes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teachers.id'), nullable=False),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('classes.id'), nullable=False),
        sa.UniqueConstraint('teacher_id', 'class_id', name='uq_teacher_classes_teacher_class'),
    )
    op.create_index('ix_teacher_classes_teacher_id', 'teacher_classes', ['teacher_id'])
    op.create_index('ix_teacher_classes_class_id', 'teacher_classes', ['class_id'])

    op.create_table(
        'parents',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('auth_user_id', sa.String(length=64), nullable=True, unique=True),
        sa.Column('name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('phone', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_parents_auth_user_id', 'parents', ['auth_user_id'])
    op.create_index('ix_parents_phone', 'parents', ['phone'])

    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('student_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('english_first_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('campus', sa.String(length=80), nullable=False, server_default=''),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('classes.id'), nullable=True),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('parents.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_students_class_id', 'students', ['class_id'])
    op.create_index('ix_students_parent_id', 'students', ['parent_id'])
    op.create_index('ix_students_campus', 'students', ['campus'])

    op.create_table(
        'buses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('label', sa.String(length=60), nullable=False, unique=True),
        sa.Column('plate_number', sa.String(length=30), nullable=False, server_default=''),
    )

    op.create_table(
        'drivers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('auth_user_id', sa.String(length=64), nullable=False, unique=True),
        sa.Column('name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('phone', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('bus_id', sa.Integer(), sa.ForeignKey('buses.id'), nullable=True),
    )
    op.create_index('ix_drivers_auth_user_id', 'drivers', ['auth_user_id'])
    op.create_index('ix_drivers_bus_id', 'drivers', ['bus_id'])

    op.create_table(
        'transport_time_slots',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('route_type', sa.String(length=20), nullable=False, server_default='pickup'),
        sa.Column('label', sa.String(length=80), nullable=False),
        sa.Column('departure_time', sa.String(length=5), nullable=False, server_default='00:00'),
        sa.UniqueConstraint('route_type', 'label', name='uq_transport_time_slots_type_label'),
    )
    op.create_index('ix_transport_time_slots_route_type', 'transport_time_slots', ['route_type'])
    op.create_index('ix_transport_time_slots_departure_time', 'transport_time_slots', ['departure_time'])

    op.create_table(
        'bus_routes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('bus_id', sa.Integer(), sa.ForeignKey('buses.id'), nullable=False),
        sa.Column('slot_id', sa.Integer(), sa.ForeignKey('transport_time_slots.id'), nullable=False),
        sa.UniqueConstraint('bus_id', 'slot_id', name='uq_bus_routes_bus_slot'),
    )

    op.create_table(
        'route_blocks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('route_id', sa.Integer(), sa.ForeignKey('bus_routes.id'), nullable=False),
        sa.Column('block_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('label', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('estimated_extra_time', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_route_blocks_route_order', 'route_blocks', ['route_id', 'block_order'])

    op.create_table(
        'route_block_students',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('block_id', sa.Integer(), sa.ForeignKey('route_blocks.id'), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.UniqueConstraint('block_id', 'student_id', name='uq_route_block_students_block_student'),
    )
    op.create_index('ix_route_block_students_student_id', 'route_block_students', ['student_id'])

    op.create_table(
        'shuttle_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('bus_id', sa.Integer(), sa.ForeignKey('buses.id'), nullable=False),
        sa.Column('slot_id', sa.Integer(), sa.ForeignKey('transport_time_slots.id'), nullable=False),
        sa.Column('run_date', sa.Date(), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False, server_default='idle'),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('bus_id', 'slot_id', 'run_date', name='uq_shuttle_runs_bus_slot_date'),
    )
    op.create_index('ix_shuttle_runs_run_date', 'shuttle_runs', ['run_date'])

    op.create_table(
        'portal_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('request_type', sa.String(length=20), nullable=False),
        sa.Column('payload_json', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_portal_requests_type_status', 'portal_requests', ['request_type', 'status'])
    op.create_index('ix_portal_requests_student_id', 'portal_requests', ['student_id'])
    op.create_index('ix_portal_requests_created_at', 'portal_requests', ['created_at'])

    op.create_table(
        'books',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=160), nullable=False),
    )
    op.create_index('ix_books_name', 'books', ['name'])

    op.create_table(
        'class_books',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('classes.id'), nullable=False),
        sa.Column('book_id', sa.Integer(), sa.ForeignKey('books.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active_from', sa.Date(), nullable=True),
        sa.Column('active_to', sa.Date(), nullable=True),
        sa.UniqueConstraint('class_id', 'book_id', name='uq_class_books_class_book'),
    )

    op.create_table(
        'student_commitments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('book_id', sa.Integer(), sa.ForeignKey('books.id'), nullable=False),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('classes.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='unchecked'),
        sa.Column('note', sa.Text(), nullable=False, server_default=''),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('student_id', 'book_id', 'date', name='uq_student_commitments_student_book_date'),
    )
    op.create_index('ix_student_commitments_class_date', 'student_commitments', ['class_id', 'date'])

    op.create_table(
        'daily_reports',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('classes.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('send_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('student_id', 'class_id', 'date', name='uq_daily_reports_student_class_date'),
    )
    op.create_index('ix_daily_reports_class_date', 'daily_reports', ['class_id', 'date'])


def downgrade() -> None:
    op.drop_table('daily_reports')
    op.drop_table('student_commitments')
    op.drop_table('class_books')
    op.drop_table('books')
    op.drop_table('portal_requests')
    op.drop_table('shuttle_runs')
    op.drop_table('route_block_students')
    op.drop_table('route_blocks')
    op.drop_table('bus_routes')
    op.drop_table('transport_time_slots')
    op.drop_table('drivers')
    op.drop_table('buses')
    op.drop_table('students')
    op.drop_table('parents')
    op.drop_table('teacher_classes')
    op.drop_table('teachers')
    op.drop_table('admin_profiles')
    op.drop_table('classes')
