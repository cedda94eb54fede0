from ._conv1d_operation import Conv1dInputGradOp, Conv1dOp, Conv1dWeightGradOp

__all__ = [
    "Conv1dOp",
    "Conv1dInputGradOp",
    "Conv1dWeightGradOp",
]
