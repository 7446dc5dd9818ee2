from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from portal.db import Base, SessionLocal, engine
from portal.models import (
    Book,
    Bus,
    BusRoute,
    ClassBook,
    Driver,
    Parent,
    RouteBlock,
    RouteBlockStudent,
    RouteType,
    SchoolClass,
    Student,
    Teacher,
    TeacherClass,
    TransportTimeSlot,
)


Base.metadata.create_all(bind=engine)

db = SessionLocal()
try:
    if not db.query(SchoolClass).first():
        school_class = SchoolClass(name='Maple 1', campus='Main')
        db.add(school_class)
        db.flush()

        teacher = Teacher(auth_user_id='demo-teacher', name='Demo Teacher', email='teacher@example.com')
        db.add(teacher)
        db.flush()
        db.add(TeacherClass(teacher_id=teacher.id, class_id=school_class.id))

        parent = Parent(auth_user_id='demo-parent', name='Demo Parent', phone='010-0000-0001')
        db.add(parent)
        db.flush()

        students = [
            Student(student_name='Kim Minji', english_first_name='Minnie', campus='Main', class_id=school_class.id, parent_id=parent.id),
            Student(student_name='Lee Jihoon', english_first_name='', campus='Main', class_id=school_class.id, parent_id=parent.id),
            Student(student_name='Park Seoyeon', english_first_name='Sophie', campus='Main', class_id=school_class.id),
        ]
        db.add_all(students)
        db.flush()

        for position, name in enumerate(('Phonics Book 1', 'Reading Log')):
            book = Book(name=name)
            db.add(book)
            db.flush()
            db.add(ClassBook(class_id=school_class.id, book_id=book.id, position=position))

        bus = Bus(label='Bus 1', plate_number='12A 3456')
        db.add(bus)
        db.flush()
        db.add(Driver(auth_user_id='demo-driver', name='Demo Driver', bus_id=bus.id))

        slot = TransportTimeSlot(route_type=RouteType.PICKUP.value, label='Morning 1', departure_time='08:00')
        db.add(slot)
        db.flush()

        route = BusRoute(bus_id=bus.id, slot_id=slot.id)
        db.add(route)
        db.flush()

        for order, (label, extra, riders) in enumerate(
            (('Apartment Gate', 5, students[:2]), ('Library Corner', 10, students[2:]))
        ):
            block = RouteBlock(route_id=route.id, block_order=order, label=label, estimated_extra_time=extra)
            db.add(block)
            db.flush()
            for student in riders:
                db.add(RouteBlockStudent(block_id=block.id, student_id=student.id))
        db.commit()
finally:
    db.close()

print('DB initialized with sample data.')
