from .gym_env import HummingbirdEnv

__all__ = ["HummingbirdEnv"]
