from .simulated_chain import DeployedContract, SimulatedChain

__all__ = ["DeployedContract", "SimulatedChain"]
