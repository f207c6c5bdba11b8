from typing import Generic, TypeVar, Type, Optional, List, Any
from sqlalchemy.orm import Session
from src.db.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    def __init__(self, session: Session, model: Type[ModelType]):
        self.session = session
        self.model = model

    def get(self, id: Any) -> Optional[ModelType]:
        return self.session.get(self.model, id)

    def get_all(self, skip: int = 0, limit: int = 100) -> List[ModelType]:
        return self.session.query(self.model).offset(skip).limit(limit).all()

    def add(self, obj: ModelType, commit: bool = True) -> ModelType:
        self.session.add(obj)
        if commit:
            self.session.commit()
            self.session.refresh(obj)
        else:
            self.session.flush()
        return obj
