"""Simulator, loader and interactive debugger for RISC-V RV32IM executables."""

__version__ = "0.1.0"

__all__ = ["cli", "cpu", "debugger", "isa", "loader", "memory", "supervisor"]