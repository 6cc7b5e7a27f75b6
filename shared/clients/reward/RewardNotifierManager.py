from shared.clients.ClientManager import ClientManager
from shared.clients.reward.RewardNotifierInterface import RewardNotifierInterface


class RewardNotifierManager(ClientManager):
    """Instantiates the reward notifier selected by REWARD_ENGINE.

    Optional: with REWARD_ENGINE unset (or "none") get_client() returns None.
    """

    engine_env_key = "REWARD_ENGINE"
    package = "shared.clients.reward"
    class_prefix = "RewardNotifier"
    optional = True

    def get_client(self) -> RewardNotifierInterface | None:
        return self.client
