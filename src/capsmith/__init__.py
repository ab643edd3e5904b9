"""capsmith: an agent that grows its own capabilities at runtime.

This package provides:
- A versioned store of generated capability modules and their specs
- A dependency resolver that installs what generated code imports
- A quarantine gate where a human reviews (and may edit) generated code
- An execution sandbox that contains a capability's working directory and output
- A bounded repair loop that fixes failing capabilities with the generator

Key Components:
- CapabilityStore: Append-only versions, specs and dependency manifest
- QuarantineGate: Human approval before anything is installed
- ExecutionSandbox: Runs the latest version and returns an ExecutionOutcome
- RepairLoop: Re-runs, regenerates or re-parameterizes up to three times
- CapabilityAuthor: Writes a new capability from a description
- DynamicAgent: Conversation loop tying it all together

Example:
    from capsmith import DynamicAgent

    agent = DynamicAgent()
    print(agent.chat("What is the SHA-256 of the word 'hello'?"))
"""

from capsmith.agent import AgentConfig, ConversationTurn, DynamicAgent
from capsmith.codegen import CapabilityAuthor
from capsmith.core import ExecutionContext, ExecutionOutcome, LogLine, RuntimeFault
from capsmith.errors import (
    CapsmithError,
    DeclinedError,
    DependencyInstallError,
    GeneratorProtocolError,
    NotFoundError,
    RepairExhaustedError,
    ValidationError,
)
from capsmith.generator import AnthropicGenerator, FunctionCall, Generator, GeneratorReply, Message
from capsmith.quarantine import AutoApprover, AutoDecliner, ConsoleApprover, QuarantineGate
from capsmith.repair import RepairLoop
from capsmith.resolver import NullInstaller, PipInstaller, find_imports
from capsmith.sandbox import ExecutionSandbox, ImportlibLoader
from capsmith.store import CapabilityStore

__version__ = "0.1.0"

__all__ = [
    # Agent
    "DynamicAgent",
    "AgentConfig",
    "ConversationTurn",
    "CapabilityAuthor",
    # Lifecycle
    "CapabilityStore",
    "QuarantineGate",
    "ExecutionSandbox",
    "ImportlibLoader",
    "RepairLoop",
    "find_imports",
    "PipInstaller",
    "NullInstaller",
    # Approvers
    "ConsoleApprover",
    "AutoApprover",
    "AutoDecliner",
    # Generator boundary
    "Generator",
    "AnthropicGenerator",
    "Message",
    "FunctionCall",
    "GeneratorReply",
    # Core types
    "ExecutionOutcome",
    "ExecutionContext",
    "LogLine",
    "RuntimeFault",
    # Errors
    "CapsmithError",
    "ValidationError",
    "NotFoundError",
    "DeclinedError",
    "RepairExhaustedError",
    "GeneratorProtocolError",
    "DependencyInstallError",
]
