"""Node-side metrics agent."""

from nodewatch.agent.app import create_agent_app
from nodewatch.agent.sampler import MetricsSampler, NetworkRateEstimator

__all__ = ["MetricsSampler", "NetworkRateEstimator", "create_agent_app"]
