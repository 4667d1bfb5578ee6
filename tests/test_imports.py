def test_imports():
    """
    @brief
    Verifies that all core Shiftwise modules are importable.

    @details
    Ensures package structure integrity and confirms that the constraint,
    approval, explanation and simulation layers resolve without import errors.
    """
    import shiftwise
    import shiftwise.approval
    import shiftwise.constraints
    import shiftwise.dataloader
    import shiftwise.explanation
    import shiftwise.simulation

    # --- Assert ---
    # Confirm that modules were successfully imported and resolved
    assert all(
        [
            shiftwise,
            shiftwise.approval,
            shiftwise.constraints,
            shiftwise.dataloader,
            shiftwise.explanation,
            shiftwise.simulation,
        ]
    )
