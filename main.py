"""
High temperatures over 10 days in 3 cities, converted to Celsius with
broadcast constants and averaged per city.
"""

import numpy as np

from ndslice import NDBuffer


def temperature_report():
    print("=== Temperature conversion (F -> C) ===")

    temperatures_fahrenheit = NDBuffer.from_nested(
        [
            # NYC, LAX, CHI
            [72.0, 80.0, 79.0],  # 2022-06-01
            [79.0, 79.0, 79.0],  # 2022-06-02
            [76.0, 73.0, 83.0],  # 2022-06-03
            [80.0, 70.0, 72.0],  # 2022-06-04
            [77.0, 75.0, 81.0],  # 2022-06-05
            [80.0, 77.0, 76.0],  # 2022-06-06
            [78.0, 76.0, 71.0],  # 2022-06-07
            [82.0, 75.0, 72.0],  # 2022-06-08
            [81.0, 80.0, 80.0],  # 2022-06-09
            [77.0, 81.0, 82.0],  # 2022-06-10
        ],
        dtype="float32",
    )
    print(temperatures_fahrenheit)
    days, cities = temperatures_fahrenheit.shape
    print(f"days={days}, cities={cities}")

    # 0-dimensional constants broadcast to (days, cities) without copying
    const_32 = NDBuffer.from_nested(32.0, dtype="float32")
    const_1_8 = NDBuffer.from_nested(1.8, dtype="float32")

    with temperatures_fahrenheit.as_shared_view() as fahrenheit, \
            const_32.as_shared_view() as c32, const_1_8.as_shared_view() as c18:
        c32 = c32.add_dimension(0, days).add_dimension(1, cities)
        c18 = c18.add_dimension(0, days).add_dimension(1, cities)
        print(f"const_32 view: shape={c32.shape}, strides={c32.strides}")

        temperatures_celsius = (fahrenheit - c32) / c18

    print(temperatures_celsius)

    with temperatures_celsius.as_shared_view() as celsius:
        average_temperatures = NDBuffer.allocate_with(
            (cities,),
            lambda index: sum(celsius.extract(1, index[0])) / days,
        )
    print(average_temperatures)

    # numpy ground truth
    np_f = temperatures_fahrenheit.numpy()
    np_avg = ((np_f - 32.0) / 1.8).mean(axis=0)
    if np.allclose(average_temperatures.numpy().astype(np.float64), np_avg, atol=1e-4):
        print("✅ Averages matched numpy!")
    else:
        print("❌ Averages mismatch!")
        print("Expected:", np_avg)


if __name__ == "__main__":
    temperature_report()
