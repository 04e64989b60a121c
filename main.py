#!/usr/bin/env python
"""
Stipple Partition - Точка входа для CLI

Разбиение поля плотности изображения (или стопки кадров) на ячейки близкой массы
"""
import psutil
import os
import argparse
import logging
import sys
import time
from pathlib import Path

logger = logging.getLogger(__name__)

def setup_logging(log_path: Path, verbose: bool):
    """Настраивает раздельное логирование в файл и консоль."""
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Уровень для файла всегда DEBUG, для консоли - в зависимости от флага --verbose
    console_level = logging.DEBUG if verbose else logging.INFO
    file_level = logging.DEBUG

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Убираем все предыдущие обработчики, чтобы избежать дублирования
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    file_handler = logging.FileHandler(log_path, mode='w', encoding='utf-8')
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    root.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    root.addHandler(console_handler)

# Импорты модулей проекта
from stipple_partition import __version__
from stipple_partition.config import PartitionConfig, STRATEGIES
from stipple_partition.core.builder import PartitionTree
from stipple_partition.io.loaders import load_frames, validate_frames
from stipple_partition.io.exporters import export_cells, export_cells_json, export_statistics
from stipple_partition.utils.density import DensitySource, DENSITY_MODELS, compute_density_stats
from stipple_partition.visualization.tracer import TraceRecorder


def parse_arguments() -> argparse.Namespace:
    """Парсинг аргументов командной строки"""
    parser = argparse.ArgumentParser(
        description='Stipple Partition - Разбиение поля плотности на ячейки равной массы',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
    Примеры использования:
    %(prog)s --input image.npy --output out/ --export json npy
    %(prog)s --input frames.npz --volume --z-weight 2 --workers 0
    %(prog)s --input image.npy --strategy centroid --generations 12 --trace-json
            """
    )

    # Основные параметры
    parser.add_argument('--input', '-i', required=True, type=str,
                        help='Путь к .npy/.npz файлу или директории с .npy кадрами')
    parser.add_argument('--output', '-o', default='output', type=str,
                        help='Выходная директория (по умолчанию: output)')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    # Экспорт
    parser.add_argument('--export', nargs='+',
                        choices=['none', 'json', 'npy'],
                        default=['json'],
                        help='Форматы экспорта (можно несколько)')

    # Плотность
    group_density = parser.add_argument_group('Плотность')
    group_density.add_argument('--model', choices=sorted(DENSITY_MODELS),
                               help='Модель плотности (по умолчанию: avg)')
    group_density.add_argument('--raw', action='store_true',
                               help='Кадры уже содержат 16-битные отсчёты плотности')
    group_density.add_argument('--volume', action='store_true',
                               help='Разбивать стопку кадров как объём (по умолчанию при >1 кадре)')
    group_density.add_argument('--plane', action='store_true',
                               help='Использовать только первый кадр')
    group_density.add_argument('--capacity', type=int,
                               help='Ёмкость объёма по кадрам (0 - по числу кадров)')

    # Параметры алгоритма
    group_algo = parser.add_argument_group('Параметры алгоритма')
    group_algo.add_argument('--generations', '-g', type=int,
                            help='Число поколений разбиения (по умолчанию: 24)')
    group_algo.add_argument('--strategy', choices=STRATEGIES,
                            help='Метод выбора разреза (по умолчанию: dipole)')
    group_algo.add_argument('--x-weight', type=int, help='Вес оси X (0 - отключить)')
    group_algo.add_argument('--y-weight', type=int, help='Вес оси Y (0 - отключить)')
    group_algo.add_argument('--z-weight', type=int, help='Вес оси кадров (0 - отключить)')
    group_algo.add_argument('--workers', type=int,
                            help='Размер пула потоков (<= 0 - все ядра, по умолчанию: 1)')

    # Визуализация и отладка
    group_debug = parser.add_argument_group('Визуализация и отладка')
    group_debug.add_argument('--trace-json', action='store_true',
                             help='Сохранить JSON трассировку для визуализации')
    group_debug.add_argument('--stats', action='store_true',
                             help='Экспортировать статистику разбиения')
    group_debug.add_argument('--stats-csv', action='store_true',
                             help='Сохранить CSV файл с решениями по каждому разрезу')
    group_debug.add_argument('--save-all', action='store_true',
                             help='Сохранять ячейки после каждого поколения')
    group_debug.add_argument('--verbose', '-v', action='store_true',
                             help='Подробный вывод')

    # Дополнительные опции
    parser.add_argument('--config', type=str,
                        help='Путь к файлу конфигурации JSON')
    parser.add_argument('--save-config', type=str,
                        help='Сохранить текущую конфигурацию в файл')

    return parser.parse_args()

def main():
    """Основная функция"""
    args = parse_arguments()
    output_dir = Path(args.output)
    log_file_path = output_dir / 'partition_log.txt'
    setup_logging(log_file_path, args.verbose)
    logger.info(f"Detailed logs are being saved to {log_file_path}")
    process = psutil.Process(os.getpid())
    trace = None
    try:
        # ============ 1. Загрузка конфигурации ============
        base = None
        if args.config:
            logger.info(f"Loading config from {args.config}")
            base = PartitionConfig.load(Path(args.config))
        config = PartitionConfig.from_args(args, base)

        if args.save_config:
            config.save(Path(args.save_config))
            logger.info(f"Config saved to {args.save_config}")

        # ============ 2. Загрузка данных ============
        input_path = Path(args.input)
        if not input_path.exists():
            raise FileNotFoundError(f"Input file not found: {input_path}")

        start_time = time.perf_counter()
        frames, metadata = load_frames(input_path.as_posix())
        validate_frames(frames)
        load_time = time.perf_counter() - start_time

        use_volume = args.volume or (len(frames) > 1 and not args.plane)
        if args.plane:
            frames = frames[:1]

        source = DensitySource(frames, config.density_model, raw=args.raw)
        if use_volume:
            table = source.volume_table(config.frame_capacity)
        else:
            table = source.plane_table()

        h, w = frames[0].shape[:2]
        n_frames = table.len_z if use_volume else 1
        logger.info(
            f"Loaded {len(frames)} frame(s) of {w}x{h} in {load_time:.2f}s, "
            f"density model={config.density_model}, total mass={table.total_mass()}"
        )

        density_stats = None
        if args.verbose or args.trace_json:
            density_stats = compute_density_stats(next(iter(source)))
            logger.debug(f"Density stats of first frame: {density_stats}")

        # ============ 3. Настройка трассировки и статистики ============
        if args.trace_json or args.stats_csv:
            trace = TraceRecorder()
            trace.record_input((n_frames, h, w), table.total_mass(), config.density_model)
            if density_stats is not None:
                trace.record_density_stats(density_stats)
            logger.info("Trace/Stats recorder enabled")

        if args.stats_csv:
            trace.start_stats_recording(output_dir / 'split_decisions.csv')

        # ============ 4. Разбиение ============
        tree = PartitionTree(table, config, trace=trace)

        def save_generation(t: PartitionTree):
            export_cells_json(t.cell_stream(), output_dir / 'generations' / f'gen_{t.generation:03d}.json')

        cpu_time_before = process.cpu_times()
        start_time = time.perf_counter()
        generations = tree.run(config.generations, save_generation if config.save_all else None)
        build_time = time.perf_counter() - start_time
        cpu_time_after = process.cpu_times()

        cpu_time_sec = (cpu_time_after.user - cpu_time_before.user) + (cpu_time_after.system - cpu_time_before.system)
        # Текущее потребление после разбиения, обычно близко к пиковому
        peak_memory_mb = process.memory_info().rss / (1024 * 1024)

        tree_stats = tree.get_stats()
        logger.info(
            f"Partitioned in {build_time:.2f}s ({generations} generations): "
            f"{tree_stats['total_cells']} cells, max level={tree_stats['max_level']}"
        )
        if tree_stats['total_mass'] != tree_stats['source_mass']:
            logger.warning(
                f"Cell mass {tree_stats['total_mass']} differs from source mass {tree_stats['source_mass']}"
            )

        # ============ 5. Экспорт результатов ============
        output_dir.mkdir(parents=True, exist_ok=True)

        export_formats = [fmt for fmt in args.export if fmt != 'none']
        if export_formats:
            logger.info(f"Exporting to formats: {', '.join(export_formats)}")
            export_cells(tree, output_dir, export_formats, (h, w), n_frames, metadata)

        if trace:
            trace.record_final_cells(tree.cell_stream())
            if args.trace_json:
                trace.dump(output_dir / 'trace.json')

        if args.stats:
            export_statistics(
                tree, output_dir / 'statistics.json',
                build_time, peak_memory_mb, cpu_time_sec, config
            )

        # ============ 6. Итоговая информация ============
        logger.info("=" * 60)
        logger.info("Stipple Partition completed successfully!")
        logger.info(f"Input: {len(frames)} frame(s) of {w}x{h} from {input_path.name}")
        logger.info(f"Output: {tree_stats['total_cells']} cells in {output_dir}")
        logger.info(f"Total time: {load_time + build_time:.2f}s")
        logger.info("=" * 60)

        return 0

    except KeyboardInterrupt:
        logger.info("Process interrupted by user")
        return 130

    except FileNotFoundError as e:
        logger.error(f"File error: {e}")
        return 1

    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 2

    except ImportError as e:
        logger.error(f"Missing dependency: {e}")
        return 3

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 255

    finally:
        if trace:
            trace.close()


if __name__ == '__main__':
    sys.exit(main())
