# 会议 Webhook 中继：内部 / 外部用户 ID 映射
