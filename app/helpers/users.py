from pydantic import ValidationError

from app.helpers.logging import logger
from app.helpers.monitoring import start_as_current_span
from app.models.query import FieldFilterModel
from app.models.user import UserModel
from app.persistence.istore import IStore

PATIENT_ROLE = "user"
_COLLECTION = "users"


class UserDirectory:
    """
    Read-only access to the user profiles.
    """

    _store: IStore

    def __init__(self, store: IStore):
        self._store = store

    @start_as_current_span("users_get")
    async def get(self, user_id: str) -> UserModel | None:
        """
        Get a user by its ID.

        Returns `None` if the user does not exist. Store errors are propagated.
        """
        document = await self._store.get(_COLLECTION, user_id)
        if not document:
            return None
        try:
            return UserModel.model_validate(document)
        except ValidationError:
            logger.debug("Parsing error", exc_info=True)
        return None

    @start_as_current_span("users_search")
    async def search(
        self,
        organization_id: str,
        role: str = PATIENT_ROLE,
    ) -> list[UserModel]:
        """
        Search the users of an organization having a role.
        """
        documents = await self._store.query(
            _COLLECTION,
            filters=[
                FieldFilterModel(field="organizationId", value=organization_id),
                FieldFilterModel(field="role", value=role),
            ],
        )
        users: list[UserModel] = []
        for document in documents:
            try:
                users.append(UserModel.model_validate(document))
            except ValidationError:
                logger.debug("Parsing error", exc_info=True)
        return users
