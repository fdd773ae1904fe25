"""CLI 包入口点

使 toolchat.cli 可以作为模块运行：
    python -m toolchat.cli estimate conversation.json
    python -m toolchat.cli compact conversation.json --max-tokens 20000
"""

import argparse
import sys

from toolchat.cli.commands.context import compact_command, estimate_command, usage_command
from toolchat.core.utils.logger import init_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolchat",
        description="toolchat 上下文管理工具，估算和压缩工具增强的对话历史",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="输出 DEBUG 级别日志",
    )

    subparsers = parser.add_subparsers(dest="command", help="可用命令")

    # estimate
    estimate_parser = subparsers.add_parser("estimate", help="估算对话文件的 token 数")
    estimate_parser.add_argument("file", help="对话 JSON 文件")
    estimate_parser.set_defaults(func=estimate_command)

    # compact
    compact_parser = subparsers.add_parser("compact", help="按上下文预算压缩对话文件")
    compact_parser.add_argument("file", help="对话 JSON 文件")
    compact_parser.add_argument("--max-tokens", type=int, help="触发压缩的 token 数，覆盖配置文件")
    compact_parser.add_argument("--keep-recent", type=int, help="原样保留的最新消息数，覆盖配置文件")
    compact_parser.add_argument(
        "--strategy",
        choices=["summary", "context_editing", "truncation"],
        help="首选压缩策略，覆盖配置文件",
    )
    compact_parser.add_argument("--output", "-o", help="结果输出文件，默认打印到终端")
    compact_parser.set_defaults(func=compact_command)

    # usage
    usage_parser = subparsers.add_parser("usage", help="评估对话占模型上下文窗口的比例")
    usage_parser.add_argument("file", help="对话 JSON 文件")
    usage_parser.add_argument("--model", help="模型名称，默认为配置中的模型")
    usage_parser.add_argument("--limit", type=int, help="上下文窗口大小，覆盖模型默认值")
    usage_parser.set_defaults(func=usage_command)

    return parser


def main(argv=None) -> None:
    """主入口函数，解析命令行参数并执行相应命令"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        sys.exit(1)

    init_logger(level="DEBUG" if args.verbose else None)
    args.func(args)


if __name__ == "__main__":
    main()
