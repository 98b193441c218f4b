"""附件预处理：图片描述 + 文字识别的并发分析与取消。"""

from octabot.preprocessing.cancellation import CancellationToken
from octabot.preprocessing.coordinator import ImagePreprocessingCoordinator, Outcome, settle

__all__ = ["CancellationToken", "ImagePreprocessingCoordinator", "Outcome", "settle"]
