from .models import ConversionStatus, ConvertedFile, ExecutionPath, SourceFile

__all__ = ["ConversionStatus", "ConvertedFile", "ExecutionPath", "SourceFile"]
