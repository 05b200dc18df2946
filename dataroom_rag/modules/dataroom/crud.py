"""CRUD operations for dataroom entities using FastCRUD."""

from fastcrud import FastCRUD

from .models import Dataroom, DataroomDocument, DataroomRAGSettings

dataroom_crud: FastCRUD = FastCRUD(Dataroom)
dataroom_document_crud: FastCRUD = FastCRUD(DataroomDocument)
dataroom_rag_settings_crud: FastCRUD = FastCRUD(DataroomRAGSettings)
