VERSION = "1.1.1"

UPDATE_INFO = """
**更新日志**
- v1.1.1: 文件匹配修正
  - 排除模式与包含模式使用相同的 glob 规则，`*` 不再跨越目录
  - 隐藏文件与隐藏目录同样参与匹配
  - DEBUG=true 等同于 -v
- v1.1.0: 跨平台资源读取
  - 直接解析 PE/COFF 资源目录，不再依赖 Win32 LoadLibraryEx，Linux/macOS 上同样可用
  - 同时校验 RT_STRING 资源的全部语言版本
  - 新增 --exclude 排除模式与 EXCLUDE_PATTERNS 配置
- v1.0.1: 截断资源块防护
  - 长度前缀超出资源块末尾时只扫描实际存在的代码单元，不再越界
- v1.0.0: 首个版本
  - cp1252 反向映射 + UTF-8 位模式检测乱码字符串
  - 多线程并行校验，乱码计数无丢失更新
  - 发现乱码时退出码为 1
"""
