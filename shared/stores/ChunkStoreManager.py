from shared.clients.ClientManager import ClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.stores.ChunkStoreInterface import ChunkStoreInterface
from shared.stores.sql.SqlDatabase import SqlDatabase


class ChunkStoreManager(ClientManager):
    """Instantiates the chunk store selected by STORE_ENGINE.

    "sql" (default) keeps chunks in the chat-history database, "qdrant" in a
    Qdrant collection.
    """

    engine_env_key = "STORE_ENGINE"
    package = "shared.stores"
    class_prefix = "ChunkStore"
    default_engine = "sql"

    def __init__(self, helper_config: HelperConfig, database: SqlDatabase):
        self.database = database
        super().__init__(helper_config, database=database)

    def get_store(self) -> ChunkStoreInterface:
        return self.client
