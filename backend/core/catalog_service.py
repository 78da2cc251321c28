"""
Courses, teachers and their links.

Find-or-create is keyed on the natural unique field (course code, teacher
name, course/teacher pair). The insert is an upsert with $setOnInsert so two
concurrent creators converge on one document; a DuplicateKeyError from the
unique index is answered by re-reading the winner.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from core.sequence import SequenceGenerator
from errors import DuplicateError, NotFoundError

logger = logging.getLogger(__name__)


def normalize_teacher_name(name: str) -> str:
    """Trim, collapse inner whitespace, lowercase."""
    return " ".join(name.split()).lower()


def display_teacher_name(name: str) -> str:
    return " ".join(name.split())


class CatalogService:
    def __init__(self, db, sequences: SequenceGenerator):
        self.db = db
        self.sequences = sequences

    async def _find_or_create(
        self,
        collection_name: str,
        key: Dict[str, Any],
        fields: Dict[str, Any],
        session=None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        collection = self.db[collection_name]

        existing = await collection.find_one(key, session=session)
        if existing:
            return existing

        now = now or datetime.utcnow()
        new_id = await self.sequences.next_id(collection_name, session=session)
        try:
            doc = await collection.find_one_and_update(
                key,
                {"$setOnInsert": {"id": new_id, **fields, "createdAt": now, "updatedAt": now}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
                session=session,
            )
        except DuplicateKeyError:
            doc = await collection.find_one(key, session=session)
            if doc is None:
                raise
        return doc

    # =========================================================================
    # COURSES
    # =========================================================================

    async def list_courses(self) -> List[Dict[str, Any]]:
        return await self.db.courses.find({}).sort("code", 1).to_list(length=None)

    async def get_course(self, course_id: int, session=None) -> Dict[str, Any]:
        course = await self.db.courses.find_one({"id": course_id}, session=session)
        if not course:
            raise NotFoundError("Course not found")
        return course

    async def create_course(self, code: str, name: str, session=None) -> Dict[str, Any]:
        if await self.db.courses.find_one({"code": code}, session=session):
            raise DuplicateError("Course code already exists")

        now = datetime.utcnow()
        course_id = await self.sequences.next_id("courses", session=session)
        doc = {"id": course_id, "code": code, "name": name, "createdAt": now, "updatedAt": now}
        try:
            await self.db.courses.insert_one(doc, session=session)
        except DuplicateKeyError:
            raise DuplicateError("Course code already exists")

        logger.info(f"[CATALOG] Course {code} created (id={course_id})")
        return doc

    async def find_or_create_course(self, code: str, session=None) -> Dict[str, Any]:
        return await self._find_or_create("courses", {"code": code}, {"name": code}, session=session)

    # =========================================================================
    # TEACHERS
    # =========================================================================

    async def find_or_create_teacher(self, name: str, session=None) -> Dict[str, Any]:
        return await self._find_or_create(
            "teachers", {"name": display_teacher_name(name)}, {}, session=session
        )

    async def link_course_teacher(self, course_id: int, teacher_id: int, session=None) -> Dict[str, Any]:
        return await self._find_or_create(
            "course_teachers", {"courseId": course_id, "teacherId": teacher_id}, {}, session=session
        )

    async def add_teacher_to_course(self, course_id: int, teacher_name: str, session=None) -> Dict[str, Any]:
        await self.get_course(course_id, session=session)
        teacher = await self.find_or_create_teacher(teacher_name, session=session)
        await self.link_course_teacher(course_id, teacher["id"], session=session)
        logger.info(f"[CATALOG] Teacher {teacher['id']} linked to course {course_id}")
        return teacher

    async def list_course_teachers(self, course_id: int) -> List[Dict[str, Any]]:
        await self.get_course(course_id)
        links = await self.db.course_teachers.find({"courseId": course_id}).to_list(length=None)
        teacher_ids = [link["teacherId"] for link in links]
        if not teacher_ids:
            return []
        return await self.db.teachers.find({"id": {"$in": teacher_ids}}).sort("name", 1).to_list(length=None)
