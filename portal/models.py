from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.db import Base


class RouteType(str, Enum):
    PICKUP = 'pickup'
    DROPOFF = 'dropoff'


class RequestType(str, Enum):
    ABSENCE = 'absence'
    EARLY_PICKUP = 'early_pickup'
    BUS_CHANGE = 'bus_change'


class RequestStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class SendStatus(str, Enum):
    PENDING = 'pending'
    SENT = 'sent'


class SchoolClass(Base):
    __tablename__ = 'classes'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    campus: Mapped[str] = mapped_column(String(80), default='', index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    students: Mapped[list['Student']] = relationship('Student', back_populates='school_class')
    teacher_links: Mapped[list['TeacherClass']] = relationship('TeacherClass', back_populates='school_class')
    book_links: Mapped[list['ClassBook']] = relationship('ClassBook', back_populates='school_class', cascade='all, delete-orphan')


class AdminProfile(Base):
    __tablename__ = 'admin_profiles'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    auth_user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120), default='')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Teacher(Base):
    __tablename__ = 'teachers'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    auth_user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120), default='')
    email: Mapped[str] = mapped_column(String(160), default='', index=True)
    role: Mapped[str] = mapped_column(String(20), default='teacher')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    class_links: Mapped[list['TeacherClass']] = relationship('TeacherClass', back_populates='teacher', cascade='all, delete-orphan')


class TeacherClass(Base):
    __tablename__ = 'teacher_classes'
    __table_args__ = (UniqueConstraint('teacher_id', 'class_id', name='uq_teacher_classes_teacher_class'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey('teachers.id'), index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey('classes.id'), index=True)

    teacher: Mapped['Teacher'] = relationship('Teacher', back_populates='class_links')
    school_class: Mapped['SchoolClass'] = relationship('SchoolClass', back_populates='teacher_links')


class Parent(Base):
    __tablename__ = 'parents'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    auth_user_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(120), default='')
    phone: Mapped[str] = mapped_column(String(20), default='', index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    students: Mapped[list['Student']] = relationship('Student', back_populates='parent')


class Student(Base):
    __tablename__ = 'students'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_name: Mapped[str] = mapped_column(String(120), default='')
    english_first_name: Mapped[str] = mapped_column(String(120), default='')
    campus: Mapped[str] = mapped_column(String(80), default='', index=True)
    class_id: Mapped[int | None] = mapped_column(ForeignKey('classes.id'), nullable=True, index=True)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey('parents.id'), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    school_class: Mapped['SchoolClass | None'] = relationship('SchoolClass', back_populates='students')
    parent: Mapped['Parent | None'] = relationship('Parent', back_populates='students')


class Bus(Base):
    __tablename__ = 'buses'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    label: Mapped[str] = mapped_column(String(60), unique=True)
    plate_number: Mapped[str] = mapped_column(String(30), default='')

    routes: Mapped[list['BusRoute']] = relationship('BusRoute', back_populates='bus')


class Driver(Base):
    __tablename__ = 'drivers'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    auth_user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120), default='')
    phone: Mapped[str] = mapped_column(String(20), default='')
    bus_id: Mapped[int | None] = mapped_column(ForeignKey('buses.id'), nullable=True, index=True)


class TransportTimeSlot(Base):
    __tablename__ = 'transport_time_slots'
    __table_args__ = (UniqueConstraint('route_type', 'label', name='uq_transport_time_slots_type_label'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    route_type: Mapped[str] = mapped_column(String(20), default=RouteType.PICKUP.value, index=True)
    label: Mapped[str] = mapped_column(String(80))
    departure_time: Mapped[str] = mapped_column(String(5), default='00:00', index=True)


class BusRoute(Base):
    __tablename__ = 'bus_routes'
    __table_args__ = (UniqueConstraint('bus_id', 'slot_id', name='uq_bus_routes_bus_slot'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    bus_id: Mapped[int] = mapped_column(ForeignKey('buses.id'), index=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey('transport_time_slots.id'), index=True)

    bus: Mapped['Bus'] = relationship('Bus', back_populates='routes')
    blocks: Mapped[list['RouteBlock']] = relationship(
        'RouteBlock',
        back_populates='route',
        cascade='all, delete-orphan',
        order_by='RouteBlock.block_order',
    )


class RouteBlock(Base):
    __tablename__ = 'route_blocks'
    __table_args__ = (Index('ix_route_blocks_route_order', 'route_id', 'block_order'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    route_id: Mapped[int] = mapped_column(ForeignKey('bus_routes.id'), index=True)
    block_order: Mapped[int] = mapped_column(Integer, default=0)
    label: Mapped[str] = mapped_column(String(120), default='')
    estimated_extra_time: Mapped[int] = mapped_column(Integer, default=0)

    route: Mapped['BusRoute'] = relationship('BusRoute', back_populates='blocks')
    student_links: Mapped[list['RouteBlockStudent']] = relationship(
        'RouteBlockStudent',
        back_populates='block',
        cascade='all, delete-orphan',
    )


class RouteBlockStudent(Base):
    __tablename__ = 'route_block_students'
    __table_args__ = (UniqueConstraint('block_id', 'student_id', name='uq_route_block_students_block_student'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    block_id: Mapped[int] = mapped_column(ForeignKey('route_blocks.id'), index=True)
    # Not a foreign key: rows may outlive the student record.
    student_id: Mapped[int] = mapped_column(Integer, index=True)

    block: Mapped['RouteBlock'] = relationship('RouteBlock', back_populates='student_links')


class ShuttleRun(Base):
    __tablename__ = 'shuttle_runs'
    __table_args__ = (UniqueConstraint('bus_id', 'slot_id', 'run_date', name='uq_shuttle_runs_bus_slot_date'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    bus_id: Mapped[int] = mapped_column(ForeignKey('buses.id'), index=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey('transport_time_slots.id'), index=True)
    run_date: Mapped[date] = mapped_column(Date, index=True)
    state: Mapped[str] = mapped_column(String(20), default='idle')
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class PortalRequest(Base):
    __tablename__ = 'portal_requests'
    __table_args__ = (Index('ix_portal_requests_type_status', 'request_type', 'status'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id'), index=True)
    request_type: Mapped[str] = mapped_column(String(20), index=True)
    payload_json: Mapped[str] = mapped_column(Text, default='{}')
    status: Mapped[str] = mapped_column(String(20), default=RequestStatus.PENDING.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class Book(Base):
    __tablename__ = 'books'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(160), index=True)

    class_links: Mapped[list['ClassBook']] = relationship('ClassBook', back_populates='book', cascade='all, delete-orphan')


class ClassBook(Base):
    __tablename__ = 'class_books'
    __table_args__ = (UniqueConstraint('class_id', 'book_id', name='uq_class_books_class_book'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey('classes.id'), index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey('books.id'), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    active_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    active_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    school_class: Mapped['SchoolClass'] = relationship('SchoolClass', back_populates='book_links')
    book: Mapped['Book'] = relationship('Book', back_populates='class_links')


class StudentCommitment(Base):
    __tablename__ = 'student_commitments'
    __table_args__ = (
        UniqueConstraint('student_id', 'book_id', 'date', name='uq_student_commitments_student_book_date'),
        Index('ix_student_commitments_class_date', 'class_id', 'date'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id'), index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey('books.id'), index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey('classes.id'), index=True)
    entry_date: Mapped[date] = mapped_column('date', Date, index=True)
    status: Mapped[str] = mapped_column(String(20), default='unchecked')
    note: Mapped[str] = mapped_column(Text, default='')
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DailyReport(Base):
    __tablename__ = 'daily_reports'
    __table_args__ = (
        UniqueConstraint('student_id', 'class_id', 'date', name='uq_daily_reports_student_class_date'),
        Index('ix_daily_reports_class_date', 'class_id', 'date'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id'), index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey('classes.id'), index=True)
    report_date: Mapped[date] = mapped_column('date', Date, index=True)
    send_status: Mapped[str] = mapped_column(String(20), default=SendStatus.PENDING.value)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
